from datetime import datetime

import pytest

from emr.models import Prescription, PrescriptionLayout
from emr.services import prescription_print as pp
from emr.services.layout_validation import elements_overlap, validate_layout

from .helpers import api, make_staff

A4 = {'backgroundColor': '#ffffff', 'canvasSize': {'width': 794, 'height': 1123}}
MEDS = [{'name': 'Amoxicilina', 'dosage': '500 mg', 'frequency': 'cada 8 horas', 'duration': '7 días',
         'instructions': 'Tomar con alimentos'}]


def text(id_, content, x=0, y=0, w=100, h=20, **extra):
    return {'id': id_, 'type': 'text', 'content': content, 'position': {'x': x, 'y': y},
            'size': {'width': w, 'height': h}, **extra}


def complete_layout():
    return [
        text('doctor', '{{doctorName}}', 40, 40, 300, 30),
        text('patient', 'Paciente: {{patientName}}', 40, 100, 300, 30),
        text('meds', '{{medications}}', 40, 160, 600, 400),
        {'id': 'fecha', 'type': 'date', 'position': {'x': 500, 'y': 40}, 'size': {'width': 200, 'height': 30}},
    ]


def codes(results):
    return {r['code'] for r in results}


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------
def test_complete_layout_is_valid():
    valid, results = validate_layout(complete_layout(), A4)
    assert valid is True
    assert results == []


def test_empty_layout_reports_required_content():
    valid, results = validate_layout([], A4)
    assert valid is False
    assert codes(results) == {'MISSING_PATIENT_INFO', 'MISSING_DOCTOR_INFO', 'MISSING_MEDICATIONS', 'MISSING_DATE'}


def test_legacy_bracket_markers_count_as_content():
    elements = [text('a', '[NOMBRE DEL PACIENTE]', 0, 0), text('b', '[NOMBRE DEL MÉDICO]', 0, 30),
                text('c', '[MEDICAMENTO]', 0, 60), text('d', '[FECHA]', 0, 90)]
    valid, results = validate_layout(elements, A4)
    assert valid is True


def test_missing_canvas_size_is_an_error_and_skips_bounds():
    elements = complete_layout() + [text('lejos', 'x', 5000, 5000)]
    valid, results = validate_layout(elements, {'backgroundColor': '#fff'})
    assert valid is False
    assert 'CANVAS_SIZE_MISSING' in codes(results)
    assert 'ELEMENT_OUT_OF_BOUNDS' not in codes(results)


def test_small_canvas_is_a_warning():
    valid, results = validate_layout(complete_layout(), {'canvasSize': {'width': 90, 'height': 2000}})
    assert 'CANVAS_TOO_SMALL' in codes(results)


def test_element_checks():
    elements = complete_layout() + [
        text('neg', 'x', -5, 800),
        text('out', 'x', 750, 900),
        text('zero', 'x', 300, 950, w=0),
        text('tiny', 'x', 0, 1000, style={'fontSize': 6}),
        text('huge', 'x', 150, 1000, style={'fontSize': 80}),
        text('white', 'x', 300, 1000, style={'color': '#FFFFFF'}),
        text('empty', '   ', 450, 1000),
        {'id': 'qr', 'type': 'qr', 'position': {'x': 600, 'y': 1000}, 'size': {'width': 40, 'height': 80}},
    ]
    valid, results = validate_layout(elements, A4)
    by_element = {}
    for r in results:
        by_element.setdefault(r['elementId'], set()).add(r['code'])
    assert valid is False
    assert 'ELEMENT_OUT_OF_BOUNDS_NEGATIVE' in by_element['neg']
    assert 'ELEMENT_OUT_OF_BOUNDS' in by_element['out']
    assert 'INVALID_DIMENSIONS' in by_element['zero']
    assert 'TEXT_TOO_SMALL' in by_element['tiny']
    assert 'TEXT_TOO_LARGE' in by_element['huge']
    assert 'POOR_CONTRAST' in by_element['white']
    assert 'EMPTY_TEXT' in by_element['empty']
    assert 'QR_TOO_SMALL' in by_element['qr']


def test_hidden_elements_are_not_checked_but_still_count_for_content():
    elements = complete_layout()
    elements[0] = {**elements[0], 'isVisible': False, 'position': {'x': -100, 'y': -100}}
    valid, results = validate_layout(elements, A4)
    assert valid is True


def test_overlap_is_strict():
    a = text('a', 'x', 0, 0, 100, 100)
    assert elements_overlap(a, text('b', 'x', 50, 50, 100, 100))
    assert not elements_overlap(a, text('c', 'x', 100, 0, 100, 100))
    valid, results = validate_layout(complete_layout() + [text('o', '{{notes}}', 50, 45, 100, 20)], A4)
    overlap = [r for r in results if r['code'] == 'ELEMENTS_OVERLAP']
    assert len(overlap) == 1
    assert overlap[0]['elementId'] == 'doctor'
    assert valid is True


def test_validation_coerces_loosely_typed_values():
    elements = complete_layout() + [
        text('str', 'x', '10', '900', style={'fontSize': '6'}),
        text('junk', 'x', 'a', None, style={'fontSize': 'abc'}),
        {'id': 'qr', 'type': 'qr', 'position': {'x': 600, 'y': 1000}, 'size': {'width': '40', 'height': 80}},
        'no soy un elemento',
    ]
    valid, results = validate_layout(elements, {'canvasSize': {'width': '794', 'height': 1123}})
    by_element = {}
    for r in results:
        by_element.setdefault(r['elementId'], set()).add(r['code'])
    assert valid is True
    assert by_element['str'] == {'TEXT_TOO_SMALL'}
    assert 'junk' not in by_element
    assert by_element['qr'] == {'QR_TOO_SMALL'}
    assert 'CANVAS_TOO_SMALL' not in codes(results)
    assert any(r['message'].endswith('(6px)') for r in results)


# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------
def test_replace_variables_keeps_unknown_tokens():
    out = pp.replace_variables('{{patientName}} / {{unknown}}', {'patientName': 'Ana'})
    assert out == 'Ana / {{unknown}}'


def test_format_medications():
    assert pp.format_medications(MEDS) == (
        '1. Amoxicilina 500 mg\n   cada 8 horas por 7 días\n   Indicaciones: Tomar con alimentos')
    assert pp.format_medications([]) == ''


def test_render_escapes_content_and_places_elements():
    now = datetime(2026, 10, 19, 9, 5)
    html = pp.render_print_html(
        complete_layout() + [{'id': 'hora', 'type': 'time', 'position': {'x': 0, 'y': 0},
                              'size': {'width': 50, 'height': 20}, 'zIndex': 3}],
        A4, {'patientName': '<b>Ana</b>', 'medications': MEDS}, {'autoPrint': False}, now=now)
    assert '&lt;b&gt;Ana&lt;/b&gt;' in html
    assert '<b>Ana</b>' not in html
    assert '19 de octubre de 2026' in html
    assert '09:05' in html
    assert 'left: 40px; top: 100px; width: 300px; height: 30px;' in html
    assert 'window.print()' not in html


def test_render_options_and_hidden_elements():
    elements = complete_layout() + [text('oculto', 'SECRETO', isVisible=False)]
    html = pp.render_print_html(elements, A4, {}, {'watermarkText': 'COPIA', 'colorMode': 'grayscale',
                                                   'pageSize': 'Letter', 'orientation': 'landscape'})
    assert 'SECRETO' not in html
    assert '<div class="watermark">COPIA</div>' in html
    assert 'grayscale(100%)' in html
    assert 'size: Letter landscape' in html
    assert 'window.print()' in html
    assert 'Nombre del Paciente' in html


def test_style_values_cannot_break_out_of_css():
    css = pp.style_to_css({'color': 'red;" onload="x', 'fontSize': 14})
    assert '"' not in css
    assert 'font-size: 14px' in css


HOSTILE = '0px"><script>alert(1)</script><div a="'


def test_geometry_and_canvas_values_cannot_break_out_of_markup():
    el = text('x', 'hola', 40, 10)
    el['position']['x'] = HOSTILE
    el['zIndex'] = HOSTILE
    canvas = {'backgroundColor': 'red}</style><script>alert(1)</script>',
              'canvasSize': {'width': HOSTILE, 'height': 1123}}
    html = pp.render_print_html([el], canvas, {}, {'autoPrint': False, 'pageSize': '</style><script>'})
    assert '<script' not in html
    assert 'left: 0px; top: 10px; width: 100px; height: 20px; z-index: 0;' in html
    assert 'width: 794px; height: 1123px;' in html


def test_render_skips_malformed_elements():
    qr = {'id': 'qr', 'type': 'qr', 'position': 'arriba', 'size': {'width': '80', 'height': None}}
    html = pp.render_print_html(['basura', qr], A4, {}, {'autoPrint': False})
    assert 'QR Code' in html
    assert 'width: 0px; height: 0px; background: #f0f0f0' in html


# ---------------------------------------------------------------------
# API
# ---------------------------------------------------------------------
@pytest.mark.django_db
def test_layout_crud_visibility_and_defaults(doctor, clinic):
    client = api(doctor)
    first = client.post('/api/prescription-layouts', {
        'templateName': 'Mi receta', 'templateElements': complete_layout(), 'canvasSettings': A4, 'isDefault': True,
    }, format='json')
    assert first.status_code == 201
    second = client.post('/api/prescription-layouts', {
        'templateName': 'Otra', 'templateElements': complete_layout(), 'canvasSettings': A4, 'isDefault': True,
    }, format='json')
    assert not PrescriptionLayout.objects.get(id=first.data['layout']['id']).is_default
    assert PrescriptionLayout.objects.get(id=second.data['layout']['id']).is_default

    colleague = make_staff('dr_colega', clinic)
    lid = first.data['layout']['id']
    assert api(colleague).get(f'/api/prescription-layouts/{lid}').status_code == 404
    client.patch(f'/api/prescription-layouts/{lid}', {'isPublic': True}, format='json')
    assert api(colleague).get(f'/api/prescription-layouts/{lid}').status_code == 200
    assert api(colleague).delete(f'/api/prescription-layouts/{lid}').status_code == 403
    listed = api(colleague).get('/api/prescription-layouts')
    assert [layout['id'] for layout in listed.data['data']] == [lid]
    assert client.delete(f'/api/prescription-layouts/{lid}').status_code == 200


@pytest.mark.django_db
def test_validate_and_preview_endpoints(doctor):
    client = api(doctor)
    r = client.post('/api/prescription-layouts/validate', {'templateElements': [], 'canvasSettings': A4},
                    format='json')
    assert r.status_code == 200
    assert r.data['valid'] is False
    preview = client.post('/api/prescription-layouts/preview', {
        'templateElements': complete_layout(), 'canvasSettings': A4, 'data': {'patientName': 'María'},
    }, format='json')
    assert preview.status_code == 200
    assert preview['Content-Type'].startswith('text/html')
    body = preview.content.decode()
    assert 'María' in body
    assert 'window.print()' not in body


@pytest.mark.django_db
def test_print_prescription_uses_default_layout_and_counts_usage(doctor, patient):
    rx = Prescription.objects.create(patient=patient, doctor=doctor, clinic=patient.clinic, medications=MEDS,
                                     diagnosis='Faringitis')
    client = api(doctor)
    builtin = client.get(f'/api/prescriptions/{rx.id}/print')
    assert builtin.status_code == 200
    body = builtin.content.decode()
    assert 'Juan Pérez' in body and 'Dra. Ana López' in body and 'Clínica Norte' in body
    assert '1. Amoxicilina 500 mg' in body

    layout = PrescriptionLayout.objects.create(doctor=doctor, template_name='Propia', is_default=True,
                                               template_elements=[text('p', 'RX {{prescriptionId}}')],
                                               canvas_settings=A4)
    r = client.get(f'/api/prescriptions/{rx.id}/print', {'autoPrint': 'false'})
    body = r.content.decode()
    assert f'RX {rx.id}' in body
    assert 'window.print()' not in body
    layout.refresh_from_db()
    assert layout.usage_count == 1
    assert layout.last_used_at is not None


@pytest.mark.django_db
def test_print_settings_roundtrip(doctor):
    client = api(doctor)
    assert client.get('/api/print-settings').data['settings']['pageSize'] == 'A4'
    layout = PrescriptionLayout.objects.create(doctor=doctor, template_name='X', canvas_settings=A4)
    r = client.post('/api/print-settings', {
        'pageSize': 'Letter', 'watermarkText': '<i>COPIA</i>', 'defaultLayoutId': layout.id,
    }, format='json')
    assert r.status_code == 200
    settings = r.data['settings']
    assert settings['pageSize'] == 'Letter'
    assert settings['watermarkText'] == 'COPIA'
    assert settings['defaultLayoutId'] == layout.id


@pytest.mark.django_db
def test_layout_fields_are_type_checked(doctor):
    client = api(doctor)
    hostile = complete_layout()
    hostile[0]['position'] = {'x': HOSTILE, 'y': 40}
    r = client.post('/api/prescription-layouts', {
        'templateName': 'Mala', 'templateElements': hostile, 'canvasSettings': A4,
    }, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'validation_error'
    assert not PrescriptionLayout.objects.exists()

    loose = complete_layout()
    loose[0]['style'] = {'fontSize': '12'}
    r = client.post('/api/prescription-layouts/validate', {'templateElements': loose, 'canvasSettings': A4},
                    format='json')
    assert r.status_code == 200
    assert r.data['valid'] is True

    loose[0]['style'] = {'fontSize': 'abc'}
    r = client.post('/api/prescription-layouts/validate', {'templateElements': loose, 'canvasSettings': A4},
                    format='json')
    assert r.status_code == 400
    r = client.post('/api/prescription-layouts/validate', {
        'templateElements': complete_layout(), 'canvasSettings': {'canvasSize': {'width': 'ancho'}},
    }, format='json')
    assert r.status_code == 400


@pytest.mark.django_db
def test_stored_public_layout_prints_safely_for_a_colleague(doctor, clinic, patient):
    elements = complete_layout()
    elements[0]['position'] = {'x': HOSTILE, 'y': 40}
    elements[1]['zIndex'] = HOSTILE
    layout = PrescriptionLayout.objects.create(
        doctor=doctor, template_name='Compartida', is_public=True, template_elements=elements,
        canvas_settings={'backgroundColor': '</style><script>alert(1)</script>',
                         'canvasSize': {'width': HOSTILE, 'height': 1123}})
    colleague = make_staff('dr_colega', clinic)
    rx = Prescription.objects.create(patient=patient, doctor=colleague, clinic=clinic, medications=MEDS)
    r = api(colleague).get(f'/api/prescriptions/{rx.id}/print', {'layoutId': layout.id, 'autoPrint': 'false'})
    assert r.status_code == 200
    body = r.content.decode()
    assert '<script' not in body
    assert 'dr_colega' in body
    assert 'left: 0px; top: 40px;' in body
