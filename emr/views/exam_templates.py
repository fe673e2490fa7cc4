from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.permissions import IsDoctor
from emr.serializers.exam_templates import ExamTemplateUpdateSerializer, ExamTemplateWriteSerializer
from emr.services import exam_templates as svc


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def exam_templates(request):
    if request.method == 'POST':
        s = ExamTemplateWriteSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        t = svc.create_template(request.user, s.validated_data)
        return Response({'ok': True, 'template': svc.template_to_dict(t)}, status=201)
    include_inactive = request.query_params.get('includeInactive') in ('1', 'true', 'True')
    qs = svc.list_templates(request.user, include_inactive=include_inactive)
    return Response({'ok': True, 'data': [svc.template_to_dict(t) for t in qs]})


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsDoctor])
def exam_template_detail(request, template_id: int):
    t = svc.get_template_or_raise(request.user, template_id)
    if request.method == 'GET':
        return Response({'ok': True, 'template': svc.template_to_dict(t)})
    if request.method == 'DELETE':
        svc.deactivate_template(t)
        return Response({'ok': True})
    s = ExamTemplateUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    t = svc.update_template(t, s.validated_data)
    return Response({'ok': True, 'template': svc.template_to_dict(t)})
