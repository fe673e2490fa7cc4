"""
Visual prescription layout endpoints: CRUD, validation, preview and the
per-doctor print settings.
"""
from django.http import HttpResponse
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.permissions import IsDoctor
from emr.serializers.layouts import (
    LayoutPreviewSerializer, LayoutValidateSerializer, LayoutWriteSerializer, PrintSettingsSerializer,
)
from emr.services import layouts as svc
from emr.services.layout_validation import validate_layout
from emr.services.prescription_print import render_print_html


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def layouts(request):
    if request.method == 'POST':
        s = LayoutWriteSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        layout = svc.create_layout(request.user, s.validated_data)
        return Response({'ok': True, 'layout': svc.layout_to_dict(layout)}, status=201)
    qs = svc.visible_layouts(request.user, category=request.query_params.get('category'))
    return Response({'ok': True, 'data': [svc.layout_to_dict(layout) for layout in qs]})


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsDoctor])
def layout_detail(request, layout_id: int):
    if request.method == 'GET':
        return Response({'ok': True, 'layout': svc.layout_to_dict(svc.get_layout_or_raise(request.user, layout_id))})
    layout = svc.get_layout_or_raise(request.user, layout_id, for_write=True)
    if request.method == 'DELETE':
        svc.delete_layout(layout)
        return Response({'ok': True})
    s = LayoutWriteSerializer(data=request.data, partial=request.method == 'PATCH')
    s.is_valid(raise_exception=True)
    layout = svc.update_layout(layout, s.validated_data)
    return Response({'ok': True, 'layout': svc.layout_to_dict(layout)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def layout_validate(request):
    s = LayoutValidateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    valid, results = validate_layout(s.validated_data['templateElements'], s.validated_data.get('canvasSettings'))
    return Response({'ok': True, 'valid': valid, 'results': results})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def layout_preview(request):
    """Render unsaved elements with sample or supplied data."""
    s = LayoutPreviewSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    options = {'autoPrint': False, **(s.validated_data.get('options') or {})}
    html = render_print_html(s.validated_data['templateElements'], s.validated_data.get('canvasSettings'),
                             s.validated_data.get('data') or {}, options)
    return HttpResponse(html, content_type='text/html; charset=utf-8')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def print_settings(request):
    if request.method == 'POST':
        s = PrintSettingsSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        ps = svc.update_print_settings(request.user, s.validated_data)
    else:
        ps = svc.print_settings_for(request.user)
    return Response({'ok': True, 'settings': svc.print_settings_to_dict(ps)})
