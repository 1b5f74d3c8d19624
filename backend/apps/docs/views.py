"""
Document upload and management views.

Provides endpoints for:
- POST /api/docs/upload - Upload a new document into a session
- GET /api/docs/?sessionId= - List a session's documents
- GET /api/docs/<id> - Get document details
- DELETE /api/docs/<id> - Delete a document with its chunks
- GET /api/docs/<id>/status - Poll ingestion status
- GET /api/docs/<id>/chunks/<n> - Citation source
"""
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from apps.indexing.ingestor import DocumentIngestor, DocumentValidationError
from apps.indexing.models import DocumentChunk
from apps.indexing.stores import get_chunk_store
from .models import Document
from .storage import StorageError, get_storage

logger = logging.getLogger(__name__)


def not_found(what: str = 'Document') -> JsonResponse:
    return JsonResponse(
        {'error': f'{what} not found', 'code': 'NOT_FOUND'},
        status=404
    )


@csrf_exempt
@require_http_methods(["POST"])
def upload_document(request):
    """
    Upload a new document.

    POST /api/docs/upload

    Accepts multipart/form-data with a 'file' field and a 'sessionId'
    field. The document is created PENDING; the indexing worker ingests it.

    Allowed file types: PDF, TXT, MD, DOCX
    Max size: 50MB (configurable)

    Returns (201):
        {
            "id": "uuid",
            "sessionId": "abc",
            "filename": "original.pdf",
            "status": "PENDING",
            ...
        }
    """
    if 'file' not in request.FILES:
        return JsonResponse(
            {'error': 'No file provided', 'code': 'MISSING_FILE'},
            status=400
        )

    session_id = request.POST.get('sessionId', '').strip()
    if not session_id:
        return JsonResponse(
            {'error': 'sessionId is required', 'code': 'MISSING_SESSION'},
            status=400
        )

    uploaded_file = request.FILES['file']
    logger.info(
        f"Upload request: {uploaded_file.name}, {uploaded_file.content_type}, "
        f"{uploaded_file.size} bytes for session {session_id}"
    )

    try:
        document = DocumentIngestor().create_document(
            data=uploaded_file.read(),
            filename=uploaded_file.name,
            content_type=uploaded_file.content_type,
            session_id=session_id,
        )
    except DocumentValidationError as e:
        logger.info(f"Upload rejected ({e.code}): {e}")
        return JsonResponse({'error': str(e), 'code': e.code}, status=400)
    except StorageError as e:
        logger.error(f"Storage error during upload: {e}")
        return JsonResponse(
            {'error': 'Failed to store file', 'code': 'STORAGE_ERROR'},
            status=500
        )

    return JsonResponse(document.to_dict(), status=201)


@csrf_exempt
@require_http_methods(["GET"])
def list_documents(request):
    """
    List all documents of a session, newest first.

    GET /api/docs/?sessionId=abc

    Returns:
        {"documents": [{...}, ...]}
    """
    session_id = request.GET.get('sessionId', '').strip()
    if not session_id:
        return JsonResponse(
            {'error': 'sessionId is required', 'code': 'MISSING_SESSION'},
            status=400
        )

    documents = Document.objects.filter(session_id=session_id).order_by('-created_at')
    return JsonResponse({'documents': [doc.to_dict() for doc in documents]})


@csrf_exempt
@require_http_methods(["GET", "DELETE"])
def document_detail(request, document_id):
    """
    GET /api/docs/<document_id> - document details
    DELETE /api/docs/<document_id> - delete the document, its chunks and its file
    """
    try:
        document = Document.objects.get(id=document_id)
    except Document.DoesNotExist:
        return not_found()

    if request.method == 'GET':
        return JsonResponse(document.to_dict())

    storage_path = document.storage_path
    get_chunk_store().delete_document(document.id)

    try:
        get_storage().delete(storage_path)
    except StorageError as e:
        # Rows are gone already; an orphaned file is only logged
        logger.warning(f"Could not remove file for deleted document {document_id}: {e}")

    return JsonResponse({'id': str(document_id), 'deleted': True})


@csrf_exempt
@require_http_methods(["GET"])
def document_status(request, document_id):
    """
    Get ingestion status for a document.

    GET /api/docs/<document_id>/status

    Returns:
        {
            "id": "uuid",
            "status": "FAILED",
            "chunkCount": 0,
            "errorMessage": "Extraction error: ..."  // only when FAILED
        }
    """
    try:
        document = Document.objects.get(id=document_id)
    except Document.DoesNotExist:
        return not_found()

    return JsonResponse(document.status_dict())


@csrf_exempt
@require_http_methods(["GET"])
def get_chunk(request, document_id, chunk_index):
    """
    Get a specific chunk from a document.

    GET /api/docs/<document_id>/chunks/<chunk_index>

    Used for viewing citation sources (clickable citations in UI).

    Returns:
        {
            "docId": "uuid",
            "chunkId": "uuid",
            "chunkIndex": 3,
            "text": "Full chunk text content...",
            "tokenCount": 250,
            "filename": "document.pdf"
        }
    """
    try:
        chunk = DocumentChunk.objects.select_related('document').get(
            document_id=document_id,
            chunk_index=chunk_index
        )
    except DocumentChunk.DoesNotExist:
        if not Document.objects.filter(id=document_id).exists():
            return not_found()
        return not_found('Chunk')

    return JsonResponse({
        'docId': str(chunk.document_id),
        'chunkId': str(chunk.id),
        'chunkIndex': chunk.chunk_index,
        'text': chunk.text,
        'tokenCount': chunk.token_count,
        'filename': chunk.document.filename,
    })
