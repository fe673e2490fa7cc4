"""Checks a prescription layout before it is saved or printed."""
from __future__ import annotations

import math
from typing import List, Tuple

MIN_CANVAS_SIDE = 100
MIN_FONT_SIZE = 8
MAX_FONT_SIZE = 72
DEFAULT_FONT_SIZE = 12
MIN_QR_SIDE = 50

# placeholder or legacy bracket marker that satisfies each required section
REQUIRED_CONTENT = (
    ('MISSING_PATIENT_INFO', 'error', ('{{patientName}}', '[NOMBRE DEL PACIENTE]'),
     'La receta debe incluir información del paciente',
     'Agrega un elemento con {{patientName}} para mostrar el nombre del paciente'),
    ('MISSING_DOCTOR_INFO', 'error', ('{{doctorName}}', '[NOMBRE DEL MÉDICO]'),
     'La receta debe incluir información del médico',
     'Agrega un elemento con {{doctorName}} para mostrar el nombre del médico'),
    ('MISSING_MEDICATIONS', 'error', ('{{medications}}', '[MEDICAMENTO]'),
     'La receta debe incluir espacio para medicamentos',
     'Agrega un elemento con {{medications}} para mostrar la lista de medicamentos'),
)


def _num(value, default: float = 0.0) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return default
    return n if math.isfinite(n) else default


def _fmt(n: float) -> str:
    return str(int(n)) if n.is_integer() else str(n)


def _dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _result(type_, code, message, suggestion, element_id=None) -> dict:
    return {'type': type_, 'code': code, 'message': message, 'suggestion': suggestion, 'elementId': element_id}


def _box(el):
    pos = _dict(el.get('position'))
    size = _dict(el.get('size'))
    x, y = _num(pos.get('x')), _num(pos.get('y'))
    return x, y, x + _num(size.get('width')), y + _num(size.get('height'))


def elements_overlap(a: dict, b: dict) -> bool:
    """Strict rectangle intersection; touching edges do not overlap."""
    l1, t1, r1, b1 = _box(a)
    l2, t2, r2, b2 = _box(b)
    return not (r1 <= l2 or r2 <= l1 or b1 <= t2 or b2 <= t1)


def _check_element(el: dict, canvas: dict) -> List[dict]:
    results = []
    eid = el.get('id')
    canvas_size = _dict(canvas.get('canvasSize'))
    left, top, right, bottom = _box(el)
    if canvas_size:
        if left < 0 or top < 0:
            results.append(_result('error', 'ELEMENT_OUT_OF_BOUNDS_NEGATIVE',
                                   f'Elemento "{eid}" está fuera del área del canvas (posición negativa)',
                                   'Mueve el elemento dentro del área del canvas', eid))
        if right > _num(canvas_size.get('width')) or bottom > _num(canvas_size.get('height')):
            results.append(_result('warning', 'ELEMENT_OUT_OF_BOUNDS',
                                   f'Elemento "{eid}" se extiende más allá del área imprimible',
                                   'Redimensiona o reposiciona el elemento para que quepa en el canvas', eid))

    size = _dict(el.get('size'))
    width, height = _num(size.get('width')), _num(size.get('height'))
    if width <= 0 or height <= 0:
        results.append(_result('error', 'INVALID_DIMENSIONS', f'Elemento "{eid}" tiene dimensiones inválidas',
                               'Los elementos deben tener ancho y alto mayor a 0', eid))

    kind = el.get('type')
    if kind == 'text':
        style = _dict(el.get('style'))
        font_size = _num(style.get('fontSize')) or DEFAULT_FONT_SIZE
        if font_size < MIN_FONT_SIZE:
            results.append(_result('warning', 'TEXT_TOO_SMALL',
                                   f'Texto "{eid}" puede ser difícil de leer ({_fmt(font_size)}px)',
                                   'Usa un tamaño de fuente de al menos 10px para recetas médicas', eid))
        if font_size > MAX_FONT_SIZE:
            results.append(_result('warning', 'TEXT_TOO_LARGE',
                                   f'Texto "{eid}" es excesivamente grande ({_fmt(font_size)}px)',
                                   'Considera usar un tamaño de fuente más pequeño', eid))
        color = style.get('color')
        background = canvas.get('backgroundColor')
        if color and background and str(color).lower() == str(background).lower():
            results.append(_result('error', 'POOR_CONTRAST',
                                   f'Texto "{eid}" no es visible (mismo color que el fondo)',
                                   'Usa un color de texto que contraste con el fondo', eid))
        if not str(el.get('content') or '').strip():
            results.append(_result('info', 'EMPTY_TEXT', f'Elemento de texto "{eid}" está vacío',
                                   'Agrega contenido al elemento o considera eliminarlo', eid))
    elif kind == 'qr':
        side = min(width, height)
        if side < MIN_QR_SIDE:
            results.append(_result('warning', 'QR_TOO_SMALL', f'Código QR "{eid}" es muy pequeño ({_fmt(side)}px)',
                                   'Los códigos QR deben ser de al menos 50x50 píxeles para ser legibles', eid))
    return results


def validate_layout(elements, canvas) -> Tuple[bool, List[dict]]:
    """Return ``(valid, results)``; a layout is valid when no result is an error."""
    elements = [el for el in (elements or []) if isinstance(el, dict)]
    canvas = _dict(canvas)
    results = []

    canvas_size = _dict(canvas.get('canvasSize'))
    if not canvas_size:
        results.append(_result('error', 'CANVAS_SIZE_MISSING', 'El tamaño del canvas no está definido',
                               'Define el tamaño del canvas en la configuración'))
    elif _num(canvas_size.get('width')) < MIN_CANVAS_SIDE or _num(canvas_size.get('height')) < MIN_CANVAS_SIDE:
        results.append(_result('warning', 'CANVAS_TOO_SMALL', 'El canvas es muy pequeño para una receta médica',
                               'Usa un tamaño mínimo de 794x1123 píxeles (A4)'))

    visible = [el for el in elements if el.get('isVisible', True)]
    for el in visible:
        results.extend(_check_element(el, canvas))

    for i, first in enumerate(visible):
        for second in visible[i + 1:]:
            if elements_overlap(first, second):
                results.append(_result(
                    'warning', 'ELEMENTS_OVERLAP',
                    f'Elementos "{first.get("id")}" y "{second.get("id")}" se superponen',
                    'Reposiciona los elementos para evitar superposición, o ajusta el z-index '
                    'si la superposición es intencional', first.get('id')))

    contents = [str(el.get('content') or '') for el in elements]
    for code, type_, markers, message, suggestion in REQUIRED_CONTENT:
        if not any(marker in c for c in contents for marker in markers):
            results.append(_result(type_, code, message, suggestion))
    has_date = any('{{date}}' in c or '[FECHA]' in c for c in contents) or any(
        el.get('type') == 'date' for el in elements)
    if not has_date:
        results.append(_result('warning', 'MISSING_DATE', 'Se recomienda incluir la fecha en la receta',
                               'Agrega un elemento con {{date}} o un elemento de tipo "date"'))

    valid = not any(r['type'] == 'error' for r in results)
    return valid, results
