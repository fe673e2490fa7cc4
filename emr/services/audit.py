from typing import Any, Dict, Optional

from emr.models import AuditEvent
from emr.services.common import iso


def client_ip(request) -> Optional[str]:
    """First address of ``X-Forwarded-For`` when behind the proxy, else the socket peer."""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def log_action(*, user, action: str, object_type: Optional[str] = None, object_id: Optional[int] = None,
               detail: Optional[Dict[str, Any]] = None, clinic=None) -> AuditEvent:
    """Record one event; without ``clinic`` it is filed under the actor's active clinic."""
    return AuditEvent.objects.create(
        user=user if getattr(user, 'pk', None) else None,
        clinic_id=clinic.id if clinic is not None else getattr(user, 'clinic_id', None),
        action=action,
        object_type=object_type,
        object_id=object_id,
        detail=detail or {},
    )


def event_to_dict(ev: AuditEvent) -> dict:
    return {
        'id': ev.id,
        'userId': ev.user_id,
        'userName': ev.user.display_name if ev.user else None,
        'clinicId': ev.clinic_id,
        'action': ev.action,
        'objectType': ev.object_type,
        'objectId': ev.object_id,
        'detail': ev.detail,
        'createdAt': iso(ev.created_at),
    }


def clinic_events(clinic_id: int, *, action=None, object_type=None, object_id=None, date_from=None, date_to=None):
    qs = AuditEvent.objects.filter(clinic_id=clinic_id).select_related('user')
    if action:
        qs = qs.filter(action=action)
    if object_type:
        qs = qs.filter(object_type=object_type)
    if object_id:
        qs = qs.filter(object_id=object_id)
    if date_from:
        qs = qs.filter(created_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(created_at__date__lte=date_to)
    return qs.order_by('-created_at', '-id')
