from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.permissions import IsDoctorOrReadOnlyStaff
from emr.serializers.consultations import ConsultationListQuerySerializer, ConsultationWriteSerializer
from emr.services import consultations as svc
from emr.services.common import page_payload, paginate


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDoctorOrReadOnlyStaff])
def consultations(request):
    if request.method == 'POST':
        s = ConsultationWriteSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        c = svc.create_consultation(request.user, s.validated_data)
        return Response({'ok': True, 'consultation': svc.consultation_to_dict(c)}, status=201)

    q = ConsultationListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = svc.list_for_patient(request.user, q.validated_data['patientId'])
    items, total, page, page_size = paginate(qs, q.validated_data.get('page'), q.validated_data.get('pageSize'))
    return Response(page_payload([svc.consultation_to_dict(c) for c in items], total, page, page_size))


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsDoctorOrReadOnlyStaff])
def consultation_detail(request, consultation_id: int):
    c = svc.get_consultation_or_raise(request.user, consultation_id)
    if request.method == 'GET':
        return Response({'ok': True, 'consultation': svc.consultation_to_dict(c)})
    s = ConsultationWriteSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    c = svc.update_consultation(request.user, c, s.validated_data)
    return Response({'ok': True, 'consultation': svc.consultation_to_dict(c)})
