import logging
from typing import Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db.models import Count
from django.utils import timezone

from emr.models import Notification
from emr.services.common import iso

logger = logging.getLogger(__name__)


def group_name(user_id) -> str:
    return f"notifications.{user_id}"


def notification_to_dict(n: Notification) -> dict:
    return {
        'id': n.id,
        'title': n.title,
        'message': n.message,
        'category': n.category,
        'priority': n.priority,
        'clinicId': n.clinic_id,
        'patientId': n.patient_id,
        'data': n.data,
        'isRead': n.is_read,
        'readAt': iso(n.read_at),
        'createdAt': iso(n.created_at),
    }


def notify(user, *, title: str, message: str, category: str = 'system', priority: str = 'normal',
           clinic=None, patient=None, data: Optional[dict] = None) -> Notification:
    n = Notification.objects.create(
        user=user, title=title, message=message, category=category, priority=priority,
        clinic=clinic, patient=patient, data=data or {},
    )
    push(n)
    return n


def push(n: Notification) -> None:
    """Send the notification to the user's websocket group, if a layer is configured."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(group_name(n.user_id), {
            'type': 'notification.created',
            'notification': notification_to_dict(n),
        })
    except Exception:
        logger.warning('notification push failed for user %s', n.user_id, exc_info=True)


def list_notifications(user, *, unread_only: bool = False, category: Optional[str] = None):
    qs = Notification.objects.filter(user=user)
    if unread_only:
        qs = qs.filter(is_read=False)
    if category:
        qs = qs.filter(category=category)
    return qs.order_by('-created_at', '-id')


def notification_stats(user) -> dict:
    qs = Notification.objects.filter(user=user)
    by_category = {row['category']: row['n'] for row in qs.values('category').annotate(n=Count('id'))}
    return {
        'total': qs.count(),
        'unread': qs.filter(is_read=False).count(),
        'byCategory': by_category,
    }


def mark_read(user, ids: Optional[Iterable[int]] = None) -> int:
    """Mark the given notifications (or all when ``ids`` is None) as read."""
    qs = Notification.objects.filter(user=user, is_read=False)
    if ids is not None:
        qs = qs.filter(id__in=list(ids))
    return qs.update(is_read=True, read_at=timezone.now())


def delete_read(user) -> int:
    deleted, _ = Notification.objects.filter(user=user, is_read=True).delete()
    return deleted
