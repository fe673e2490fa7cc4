"""
Helpers shared by the service modules: clinic scoping, pagination and
free-text cleaning.
"""
from __future__ import annotations

import re
from typing import Optional, Tuple

import bleach
from rest_framework.exceptions import NotFound, PermissionDenied

from emr.models import Clinic, ClinicMembership

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_RE = re.compile(r'^[\+]?[0-9\s\-\(\)]{10,}$')

MAX_TEXT_LENGTH = 1000
MAX_ITEM_LENGTH = 500


def is_super(user) -> bool:
    return getattr(user, 'role', '') == 'super'


def clean_text(value, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Trim, strip markup and cap the length of user supplied text."""
    value = bleach.clean((value or '').strip(), tags=[], strip=True)
    # bleach escapes stray angle brackets instead of removing them
    value = value.replace('&lt;', '').replace('&gt;', '').replace('&amp;', '&')
    return value[:max_length]


def clean_list(values, max_length: int = MAX_ITEM_LENGTH) -> list:
    """Clean every string of a list, dropping blanks and non-strings."""
    out = []
    for v in values or []:
        if isinstance(v, str):
            v = clean_text(v, max_length)
            if v:
                out.append(v)
    return out


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value or ''))


def is_valid_phone(value: str) -> bool:
    return bool(PHONE_RE.match(value or ''))


def approved_membership(user, clinic_id) -> Optional[ClinicMembership]:
    if not clinic_id:
        return None
    return ClinicMembership.objects.filter(
        user=user, clinic_id=clinic_id,
        status=ClinicMembership.STATUS_APPROVED, is_active=True,
    ).first()


def active_clinic_or_raise(user, clinic_id=None) -> Optional[Clinic]:
    """Return the clinic the user is working in.

    Staff work in their bound clinic and must hold an approved membership
    there.  ``super`` may target any clinic through ``clinic_id``; without
    it ``None`` is returned, meaning "no clinic restriction".
    """
    if is_super(user):
        if clinic_id:
            clinic = Clinic.objects.filter(id=clinic_id).first()
            if not clinic:
                raise NotFound('Clínica no encontrada')
            return clinic
        return None
    if not getattr(user, 'clinic_id', None):
        raise PermissionDenied('No tienes una clínica activa')
    if not approved_membership(user, user.clinic_id):
        raise PermissionDenied('Tu acceso a esta clínica no está aprobado')
    return user.clinic


def paginate(qs, page=1, page_size=20) -> Tuple[list, int, int, int]:
    total = qs.count()
    page = max(1, int(page or 1))
    page_size = min(100, max(1, int(page_size or 20)))
    start = (page-1)*page_size
    return list(qs[start:start+page_size]), total, page, page_size


def iso(value):
    return value.isoformat() if value else None


def page_payload(data: list, total: int, page: int, page_size: int) -> dict:
    return {'ok': True, 'data': data, 'pagination': {'total': total, 'page': page, 'pageSize': page_size}}
