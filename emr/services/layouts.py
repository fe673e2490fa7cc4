import logging
from typing import Optional

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied

from emr.models import PrescriptionLayout, PrintSettings
from emr.services.common import clean_text, is_super, iso
from emr.services.prescription_print import (
    DEFAULT_CANVAS, DEFAULT_ELEMENTS, options_from_settings, render_print_html,
)

logger = logging.getLogger(__name__)

# serializer field -> model field
_FIELDS = {
    'templateElements': 'template_elements',
    'canvasSettings': 'canvas_settings',
    'isDefault': 'is_default',
    'isPublic': 'is_public',
}


def layout_to_dict(layout: PrescriptionLayout) -> dict:
    return {
        'id': layout.id,
        'doctorId': layout.doctor_id,
        'templateName': layout.template_name,
        'description': layout.description,
        'templateElements': layout.template_elements,
        'canvasSettings': layout.canvas_settings,
        'category': layout.category,
        'isDefault': layout.is_default,
        'isPublic': layout.is_public,
        'usageCount': layout.usage_count,
        'lastUsedAt': iso(layout.last_used_at),
        'createdAt': iso(layout.created_at),
        'updatedAt': iso(layout.updated_at),
    }


def visible_layouts(user, category: Optional[str] = None):
    """The doctor's own layouts plus every public one, most used first."""
    qs = PrescriptionLayout.objects.filter(Q(doctor=user) | Q(is_public=True))
    if category:
        qs = qs.filter(category=category)
    return qs.order_by('-usage_count', '-updated_at', 'id')


def get_layout_or_raise(user, layout_id, *, for_write: bool = False) -> PrescriptionLayout:
    layout = PrescriptionLayout.objects.filter(id=layout_id).first()
    if not layout:
        raise NotFound('Plantilla no encontrada')
    owner = layout.doctor_id == user.id or is_super(user)
    if not owner and not layout.is_public:
        raise NotFound('Plantilla no encontrada')
    if for_write and not owner:
        raise PermissionDenied('Solo el autor puede modificar esta plantilla')
    return layout


def _apply(layout: PrescriptionLayout, data: dict) -> None:
    if 'templateName' in data:
        layout.template_name = clean_text(data['templateName'], 255)
    if 'description' in data:
        layout.description = clean_text(data['description'])
    if 'category' in data:
        layout.category = clean_text(data['category'], 64) or 'general'
    for key, field in _FIELDS.items():
        if key in data and data[key] is not None:
            setattr(layout, field, data[key])


def _clear_other_defaults(layout: PrescriptionLayout) -> None:
    if layout.is_default:
        PrescriptionLayout.objects.filter(doctor_id=layout.doctor_id, is_default=True).exclude(
            id=layout.id).update(is_default=False)


@transaction.atomic
def create_layout(doctor, data: dict) -> PrescriptionLayout:
    layout = PrescriptionLayout(doctor=doctor)
    _apply(layout, data)
    layout.save()
    _clear_other_defaults(layout)
    return layout


@transaction.atomic
def update_layout(layout: PrescriptionLayout, data: dict) -> PrescriptionLayout:
    _apply(layout, data)
    layout.save()
    _clear_other_defaults(layout)
    return layout


def delete_layout(layout: PrescriptionLayout) -> None:
    layout.delete()


def mark_used(layout: PrescriptionLayout) -> None:
    PrescriptionLayout.objects.filter(id=layout.id).update(
        usage_count=F('usage_count') + 1, last_used_at=timezone.now())


def print_settings_for(doctor) -> PrintSettings:
    ps, _ = PrintSettings.objects.get_or_create(doctor=doctor)
    return ps


def print_settings_to_dict(ps: PrintSettings) -> dict:
    out = options_from_settings(ps)
    out['margins'] = ps.margins or {}
    out['defaultLayoutId'] = ps.default_layout_id
    out['updatedAt'] = iso(ps.updated_at)
    return out


_SETTINGS_FIELDS = {
    'pageSize': 'page_size',
    'orientation': 'orientation',
    'margins': 'margins',
    'quality': 'quality',
    'colorMode': 'color_mode',
    'scaleFactor': 'scale_factor',
    'includeQRCode': 'include_qr_code',
    'includeDigitalSignature': 'include_digital_signature',
}


def update_print_settings(doctor, data: dict) -> PrintSettings:
    ps = print_settings_for(doctor)
    for key, field in _SETTINGS_FIELDS.items():
        if key in data and data[key] is not None:
            setattr(ps, field, data[key])
    if 'watermarkText' in data:
        ps.watermark_text = clean_text(data['watermarkText'], 128)
    if 'defaultLayoutId' in data:
        ps.default_layout = (
            get_layout_or_raise(doctor, data['defaultLayoutId']) if data['defaultLayoutId'] else None
        )
    ps.save()
    return ps


def resolve_print_layout(doctor, layout_id=None) -> Optional[PrescriptionLayout]:
    """Explicit layout, else the doctor's configured default, else their default-flagged layout."""
    if layout_id:
        return get_layout_or_raise(doctor, layout_id)
    ps = PrintSettings.objects.filter(doctor=doctor).select_related('default_layout').first()
    if ps and ps.default_layout:
        return ps.default_layout
    return PrescriptionLayout.objects.filter(doctor=doctor, is_default=True).first()


def print_prescription_html(doctor, data: dict, layout_id=None, overrides: Optional[dict] = None) -> str:
    """Render ``data`` with a stored layout and the doctor's print settings."""
    layout = resolve_print_layout(doctor, layout_id)
    options = options_from_settings(PrintSettings.objects.filter(doctor=doctor).first())
    options.update(overrides or {})
    if layout is None:
        return render_print_html(DEFAULT_ELEMENTS, DEFAULT_CANVAS, data, options)
    html = render_print_html(layout.template_elements, layout.canvas_settings, data, options)
    mark_used(layout)
    logger.info('prescription printed with layout %s by doctor %s', layout.id, doctor.id)
    return html
