import logging

from django.core.cache import cache
from django.db import connections
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def healthz(request):
    """Database probe plus a cache round trip; 500 when the database is down."""
    try:
        with connections['default'].cursor() as c:
            c.execute('SELECT 1')
            row = c.fetchone()
    except Exception as e:
        logger.error('healthz: database probe failed: %s', e)
        return JsonResponse({'ok': False, 'error': str(e)}, status=500)
    try:
        cache.set('healthz', 1, 5)
        cache_ok = cache.get('healthz') == 1
    except Exception:
        logger.warning('healthz: cache probe failed', exc_info=True)
        cache_ok = False
    return JsonResponse({'ok': True, 'db': bool(row and row[0] == 1), 'cache': cache_ok})
