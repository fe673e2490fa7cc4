import logging

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class Conflict(APIException):
    """409 for scheduling collisions and duplicate uploads."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflicto con un recurso existente.'
    default_code = 'conflict'

    def __init__(self, detail=None, details=None):
        super().__init__(detail)
        self.details = details or {}


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('unhandled error in %s', context.get('view'))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data if isinstance(resp.data, list) else str(resp.data)
    if isinstance(detail, list) and len(detail) == 1:
        detail = detail[0]

    if isinstance(exc, Conflict):
        error = {'code': 'conflict', 'message': detail, 'details': exc.details}
    elif isinstance(exc, ValidationError):
        error = {'code': 'validation_error', 'message': detail}
    else:
        error = {'code': 'api_error', 'message': detail}
    return Response({'ok': False, 'error': error}, status=resp.status_code, headers=_keep_headers(resp))


def _keep_headers(resp):
    # Retry-After / WWW-Authenticate set by DRF
    return {k: v for k, v in resp.items() if k in ('Retry-After', 'WWW-Authenticate')}
