"""
Embedding generation.

Turns a piece of text into a fixed-dimension vector. The same embedder
is used for document chunks and for queries, so both live in one
vector space. Two backends are available:
- Ollama (local inference, default)
- Gemini embeddings API (Google's cloud API)

Each call is attempted once; callers decide whether to retry.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when embedding generation fails."""
    pass


class BaseEmbedder(ABC):
    """Abstract base class for embedding backends."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding vector for a single text.

        Raises:
            EmbeddingError: On empty text or backend failure
        """
        pass

    @abstractmethod
    def ping(self) -> bool:
        """Return True if the backend is reachable."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name being used."""
        pass

    @staticmethod
    def _check_text(text: str) -> None:
        if not text or not text.strip():
            raise EmbeddingError("Cannot generate embedding for empty text")

    @staticmethod
    def _check_dimensions(embedding: List[float]) -> None:
        expected = settings.EMBEDDING_DIMENSIONS
        if len(embedding) != expected:
            logger.warning(
                f"Expected {expected} dimensions, got {len(embedding)}"
            )


class OllamaEmbedder(BaseEmbedder):
    """Embeddings from a local Ollama server (nomic-embed-text by default)."""

    def __init__(self):
        self.base_url = settings.OLLAMA_BASE_URL
        self.model = settings.OLLAMA_EMBED_MODEL
        self.timeout = (settings.HTTP_CONNECT_TIMEOUT, settings.EMBED_TIMEOUT)

    @property
    def model_name(self) -> str:
        return self.model

    def embed(self, text: str) -> List[float]:
        self._check_text(text)

        url = f"{self.base_url}/api/embeddings"

        try:
            response = requests.post(
                url,
                json={
                    "model": self.model,
                    "prompt": text
                },
                timeout=self.timeout
            )

            if response.status_code != 200:
                error_detail = response.text[:500] if response.text else "No details"
                raise EmbeddingError(
                    f"Ollama API returned {response.status_code}: {error_detail}"
                )

            data = response.json()
            embedding = data.get("embedding")

            if not embedding:
                raise EmbeddingError("No embedding in response")
            if not isinstance(embedding, list):
                raise EmbeddingError(f"Embedding is {type(embedding).__name__}, expected a list")

            self._check_dimensions(embedding)
            return embedding

        except requests.exceptions.Timeout:
            raise EmbeddingError("Ollama API timed out")
        except requests.exceptions.ConnectionError:
            raise EmbeddingError(f"Cannot connect to Ollama at {self.base_url}")
        except requests.exceptions.RequestException as e:
            raise EmbeddingError(f"Request failed: {e}")
        except ValueError as e:
            raise EmbeddingError(f"Invalid JSON from Ollama: {e}")

    def ping(self) -> bool:
        """Check that Ollama is running and the embedding model is pulled."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)

            if response.status_code != 200:
                logger.error(f"Ollama returned {response.status_code}")
                return False

            models = [m.get("name", "") for m in response.json().get("models", [])]

            # Model names might include tags like :latest
            if not any(m.startswith(self.model) for m in models):
                logger.warning(f"Model {self.model} not found. Available: {models}")
                return False

            logger.info(f"Ollama connection OK, model {self.model} available")
            return True

        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Ollama connection test failed: {e}")
            return False


class GeminiEmbedder(BaseEmbedder):
    """Embeddings from the Google Gemini API (text-embedding-004 by default)."""

    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(self):
        self.api_key = settings.GEMINI_API_KEY
        self.model = settings.GEMINI_EMBED_MODEL
        self.timeout = httpx.Timeout(settings.EMBED_TIMEOUT, connect=settings.HTTP_CONNECT_TIMEOUT)

        if not self.api_key:
            raise EmbeddingError("GEMINI_API_KEY not configured")

    @property
    def model_name(self) -> str:
        return self.model

    def embed(self, text: str) -> List[float]:
        self._check_text(text)

        url = f"{self.base_url}/models/{self.model}:embedContent"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    url,
                    params={"key": self.api_key},
                    json={
                        "model": f"models/{self.model}",
                        "content": {"parts": [{"text": text}]},
                    }
                )
                response.raise_for_status()
                data = response.json()

            # Response format: {"embedding": {"values": [...]}}
            values = (data.get("embedding") or {}).get("values")
            if not values:
                raise EmbeddingError("No embedding in Gemini response")

            self._check_dimensions(values)
            return values

        except httpx.HTTPStatusError as e:
            logger.error(f"Gemini embedding request failed: {e.response.status_code}")
            raise EmbeddingError(f"Gemini API error: {e.response.status_code}")
        except httpx.TimeoutException:
            raise EmbeddingError("Gemini API timed out")
        except httpx.RequestError:
            raise EmbeddingError("Could not connect to Gemini API")
        except (ValueError, AttributeError) as e:
            raise EmbeddingError(f"Invalid response from Gemini API: {e}")

    def ping(self) -> bool:
        try:
            with httpx.Client(timeout=5.0) as client:
                response = client.get(
                    f"{self.base_url}/models/{self.model}",
                    params={"key": self.api_key}
                )
            return response.status_code == 200
        except httpx.RequestError as e:
            logger.error(f"Gemini connection test failed: {e}")
            return False


# =============================================================================
# Embedder Factory
# =============================================================================

_embedder_instance: Optional[BaseEmbedder] = None


def get_embedder() -> BaseEmbedder:
    """
    Get the configured embedder instance.

    Uses EMBEDDING_PROVIDER setting to determine which backend to use:
    - "ollama" (default): Local Ollama inference
    - "gemini": Google Gemini API
    """
    global _embedder_instance

    if _embedder_instance is not None:
        return _embedder_instance

    provider = settings.EMBEDDING_PROVIDER

    if provider == 'gemini':
        logger.info("Using Gemini API for embeddings")
        _embedder_instance = GeminiEmbedder()
    else:
        logger.info("Using Ollama for embeddings")
        _embedder_instance = OllamaEmbedder()

    return _embedder_instance


def reset_embedder():
    """Reset the cached embedder instance. Useful for testing."""
    global _embedder_instance
    _embedder_instance = None
