"""
Storage of study result files (PDFs, images, DICOM, video).

Files go through Django's default storage under
``<clinic>/<patient>/<study>/<timestamp-ms>-<name>`` (see the
``upload_to`` callable on :class:`emr.models.MedicalTestFile`).  Every
upload is validated against an allow-list of MIME types and extensions
and fingerprinted with MD5 so that the same file is not attached twice
to one study.
"""
import hashlib
import logging
import re
import unicodedata
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Count, Sum
from django.utils import timezone

from emr.exceptions import Conflict
from emr.models import MedicalTest, MedicalTestFile
from emr.services.common import iso

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    'application/pdf': ['.pdf'],
    'image/jpeg': ['.jpg', '.jpeg'],
    'image/png': ['.png'],
    'image/gif': ['.gif'],
    'image/webp': ['.webp'],
    'video/mp4': ['.mp4'],
    'video/quicktime': ['.mov'],
    'application/dicom': ['.dcm'],
    'text/plain': ['.txt'],
}
ALLOWED_EXTENSIONS = [ext for exts in ALLOWED_TYPES.values() for ext in exts]

_COMBINING = re.compile("[\u0300-\u036f]")
_UNSAFE = re.compile(r'[^a-zA-Z0-9._-]')
_UNDERSCORES = re.compile(r'_{2,}')


def max_file_size() -> int:
    return settings.MEDICAL_FILE_MAX_MB * 1024 * 1024


def file_extension(name: str) -> str:
    return '.' + (name or '').rsplit('.', 1)[-1].lower()


def validate_file(name: str, size: int, content_type: Optional[str] = None) -> None:
    """Raise ``ValueError`` with a user facing message when the file is not accepted."""
    if size > max_file_size():
        raise ValueError(f'El archivo excede el tamaño máximo de {settings.MEDICAL_FILE_MAX_MB}MB')
    ext = file_extension(name)
    if ext not in ALLOWED_EXTENSIONS:
        raise ValueError(f"Tipo de archivo no permitido. Tipos permitidos: {', '.join(ALLOWED_EXTENSIONS)}")
    # an unknown declared type is not checked against the extension
    if content_type and content_type in ALLOWED_TYPES and ext not in ALLOWED_TYPES[content_type]:
        raise ValueError('El tipo de archivo no coincide con su extensión')


def sanitize_file_name(name: str) -> str:
    """``'Estudio de María José.pdf'`` -> ``'estudio_de_maria_jose.pdf'``"""
    value = _COMBINING.sub('', unicodedata.normalize('NFD', name or ''))
    value = _UNSAFE.sub('_', value)
    return _UNDERSCORES.sub('_', value).lower()


def calculate_file_hash(fileobj) -> str:
    md5 = hashlib.md5()
    if hasattr(fileobj, 'chunks'):
        for chunk in fileobj.chunks():
            md5.update(chunk)
        fileobj.seek(0)
    else:
        md5.update(fileobj if isinstance(fileobj, bytes) else fileobj.read())
    return md5.hexdigest()


def check_duplicate(file_hash: str, test: MedicalTest) -> bool:
    try:
        return MedicalTestFile.objects.filter(test=test, file_hash=file_hash).exists()
    except DatabaseError:
        logger.warning('duplicate check failed for test %s', test.id, exc_info=True)
        return False


def file_to_dict(f: MedicalTestFile) -> dict:
    return {
        'id': f.id,
        'testId': f.test_id,
        'fileName': f.file_name,
        'path': f.file.name,
        'url': f.file.url if f.file else None,
        'size': f.file_size,
        'type': f.file_type,
        'hash': f.file_hash,
        'uploadedBy': f.uploaded_by_id,
        'createdAt': iso(f.created_at),
    }


@transaction.atomic
def upload(uploaded, test: MedicalTest, user=None) -> dict:
    """Validate, fingerprint and store one uploaded file for ``test``.

    Raises ``ValueError`` for rejected files and :class:`Conflict` when the
    same content is already attached and duplicates are refused.
    """
    content_type = getattr(uploaded, 'content_type', None) or ''
    validate_file(uploaded.name, uploaded.size, content_type)
    file_hash = calculate_file_hash(uploaded)
    if settings.MEDICAL_FILES_REJECT_DUPLICATES and check_duplicate(file_hash, test):
        raise Conflict('Este archivo ya fue subido para este estudio', details={'hash': file_hash})
    record = MedicalTestFile(
        test=test, file_name=uploaded.name, file_size=uploaded.size, file_type=content_type,
        file_hash=file_hash, uploaded_by=user,
    )
    record.file.save(uploaded.name, uploaded, save=False)
    record.save()
    if test.status in (MedicalTest.STATUS_ORDERED, MedicalTest.STATUS_IN_PROGRESS):
        test.status = MedicalTest.STATUS_COMPLETED
        test.result_date = timezone.localdate()
        test.save(update_fields=['status', 'result_date'])
    logger.info('stored study file %s (%s bytes) for test %s', record.file.name, record.file_size, test.id)
    return file_to_dict(record)


@transaction.atomic
def delete(record: MedicalTestFile) -> None:
    """Drop the row now and the stored blob once the transaction commits."""
    storage, name = record.file.storage, record.file.name
    record.delete()
    if name:
        transaction.on_commit(lambda: _remove_blob(storage, name))


def _remove_blob(storage, name: str) -> None:
    storage.delete(name)
    logger.info('deleted study file %s', name)


def list_files(test: MedicalTest):
    return test.files.order_by('-created_at', '-id')


def storage_stats(patient) -> dict:
    qs = MedicalTestFile.objects.filter(test__patient=patient)
    agg = qs.aggregate(total=Sum('file_size'), count=Count('id'))
    by_type = {
        row['file_type'] or 'unknown': {'count': row['n'], 'size': row['size'] or 0}
        for row in qs.values('file_type').annotate(n=Count('id'), size=Sum('file_size'))
    }
    return {'totalSize': agg['total'] or 0, 'fileCount': agg['count'], 'byType': by_type}
