from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.serializers.notifications import MarkReadSerializer, NotificationListQuerySerializer
from emr.services import notifications as svc
from emr.services.common import page_payload, paginate


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notifications(request):
    q = NotificationListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = svc.list_notifications(request.user, unread_only=vd['unread'], category=vd.get('category'))
    items, total, page, page_size = paginate(qs, vd.get('page'), vd.get('pageSize'))
    return Response(page_payload([svc.notification_to_dict(n) for n in items], total, page, page_size))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_stats(request):
    return Response({'ok': True, 'stats': svc.notification_stats(request.user)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def mark_read(request):
    s = MarkReadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    updated = svc.mark_read(request.user, s.validated_data.get('ids'))
    return Response({'ok': True, 'updated': updated})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def delete_read(request):
    return Response({'ok': True, 'deleted': svc.delete_read(request.user)})
