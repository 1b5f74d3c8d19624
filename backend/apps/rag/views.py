"""
RAG API views.

Provides endpoints for:
- Query retrieval (get relevant chunks)
- Ask endpoint (full RAG with the generator)
"""
import json
import logging
import re

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.rag.chat import GenerationOrchestrator
from apps.rag.retrieval import RetrievalEngine, RetrievalError

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 2000
MAX_TOP_K = 20


class QueryValidationError(Exception):
    """Raised when query validation fails."""
    pass


def normalize_query(query: str) -> str:
    """
    Normalize a user query for embedding.

    - Strip leading/trailing whitespace
    - Collapse multiple whitespace to single space
    - Raise if empty

    Raises:
        QueryValidationError: If query is empty after normalization or too long
    """
    if not query or not isinstance(query, str):
        raise QueryValidationError("Query cannot be empty")

    # Strip and collapse whitespace
    normalized = re.sub(r'\s+', ' ', query.strip())

    if not normalized:
        raise QueryValidationError("Query cannot be empty")

    if len(normalized) > MAX_QUERY_LENGTH:
        raise QueryValidationError(f"Query too long (max {MAX_QUERY_LENGTH} characters)")

    return normalized


def parse_body(request):
    """Return the JSON body as a dict, or None if it is not a JSON object."""
    try:
        body = json.loads(request.body or b'{}')
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


@method_decorator(csrf_exempt, name='dispatch')
class RetrieveView(View):
    """
    POST /api/rag/retrieve

    Retrieve relevant chunks of a session's notes for a query.

    Request body:
        {
            "query": "What is the main topic?",
            "sessionId": "abc",
            "topK": 5  // optional, defaults to RAG_TOP_K
        }

    Response:
        {
            "query": "What is the main topic?",
            "groundedInContext": true,
            "chunks": [
                {
                    "docId": "...",
                    "chunkId": "...",
                    "chunkIndex": 3,
                    "documentTitle": "file.pdf",
                    "snippet": "...",
                    "score": 0.8123
                }
            ]
        }
    """

    def post(self, request):
        body = parse_body(request)
        if body is None:
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        session_id = body.get("sessionId")
        if not session_id:
            return JsonResponse({"error": "sessionId is required"}, status=400)

        top_k = body.get("topK")
        if top_k is not None and (
            isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1 or top_k > MAX_TOP_K
        ):
            return JsonResponse(
                {"error": f"topK must be an integer between 1 and {MAX_TOP_K}"},
                status=400
            )

        try:
            query = normalize_query(body.get("query", ""))
        except QueryValidationError as e:
            return JsonResponse({"error": str(e)}, status=400)

        try:
            result = RetrievalEngine().retrieve_for_session(query, str(session_id), top_k=top_k)
        except RetrievalError as e:
            logger.error(f"Retrieval failed: {e}")
            return JsonResponse({"error": "Failed to process query"}, status=503)

        return JsonResponse(result.to_dict())


@method_decorator(csrf_exempt, name='dispatch')
class AskView(View):
    """
    POST /api/rag/ask

    Full RAG pipeline: retrieve + generation. Always answers; when the
    notes or the model are unavailable the answer says so.

    Request body:
        {
            "question": "What is the main topic?",
            "sessionId": "abc"
        }

    Response:
        {
            "answer": "📚 Answer from uploaded notes:\\n\\nThe main topic is...[1]",
            "label": "FROM_CONTEXT",
            "grounded": true,
            "citations": [...],
            "latencyMs": 812,
            "generationError": null
        }
    """

    def post(self, request):
        body = parse_body(request)
        if body is None:
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        session_id = body.get("sessionId")
        if not session_id:
            return JsonResponse({"error": "sessionId is required"}, status=400)

        try:
            question = normalize_query(body.get("question", ""))
        except QueryValidationError as e:
            return JsonResponse({"error": str(e)}, status=400)

        answer = GenerationOrchestrator().ask(question, str(session_id))
        return JsonResponse(answer.to_dict())
