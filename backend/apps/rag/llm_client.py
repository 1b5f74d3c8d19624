"""
LLM client abstraction layer.

Provides a single ``complete(system_directive, user_message)`` call that
can switch between:
- Ollama (local inference)
- OpenAI-compatible APIs (Groq by default, also OpenAI, Together, local servers)

Each call is attempted once with explicit timeouts; callers decide
what to do on failure.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Raised when a completion fails (timeout, non-2xx or malformed payload)."""
    pass


class BaseGenerator(ABC):
    """Abstract base class for generation backends."""

    def __init__(self):
        self.temperature = settings.LLM_TEMPERATURE
        self.max_tokens = settings.LLM_MAX_TOKENS
        self.timeout = httpx.Timeout(settings.GENERATION_TIMEOUT, connect=settings.HTTP_CONNECT_TIMEOUT)

    @abstractmethod
    def complete(self, system_directive: str, user_message: str) -> str:
        """
        Generate a reply to one user message under a system directive.

        Returns:
            The model's reply text (never empty)

        Raises:
            GenerationError: If the request fails
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name being used."""
        pass

    @staticmethod
    def _messages(system_directive: str, user_message: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": system_directive},
            {"role": "user", "content": user_message},
        ]


class OllamaGenerator(BaseGenerator):
    """Generator backed by a local Ollama server."""

    def __init__(self):
        super().__init__()
        self.base_url = settings.OLLAMA_BASE_URL
        self.model = settings.OLLAMA_CHAT_MODEL

    @property
    def model_name(self) -> str:
        return self.model

    def complete(self, system_directive: str, user_message: str) -> str:
        logger.info(f"Calling Ollama chat: model={self.model}, temp={self.temperature}")

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    f"{self.base_url}/api/chat",
                    json={
                        "model": self.model,
                        "messages": self._messages(system_directive, user_message),
                        "stream": False,
                        "options": {
                            "temperature": self.temperature,
                            "num_predict": self.max_tokens,
                        }
                    }
                )
                response.raise_for_status()
                data = response.json()

            content = (data.get("message") or {}).get("content", "")
            if not content:
                raise GenerationError("Empty response from Ollama")

            logger.info(f"Ollama response: {len(content)} chars")
            return content

        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama HTTP error: {e}")
            raise GenerationError(f"Ollama service error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("Ollama request timed out")
            raise GenerationError("Ollama service timed out")
        except httpx.RequestError as e:
            logger.error(f"Ollama connection error: {e}")
            raise GenerationError("Could not connect to Ollama")
        except (ValueError, AttributeError) as e:
            raise GenerationError(f"Invalid response from Ollama: {e}")


class OpenAICompatibleGenerator(BaseGenerator):
    """
    Generator for OpenAI-compatible chat completion APIs.

    Works with: Groq, OpenAI, Azure OpenAI, Together, local servers, etc.
    """

    def __init__(self):
        super().__init__()
        self.api_key = settings.OPENAI_API_KEY
        self.base_url = settings.OPENAI_BASE_URL.rstrip('/')
        self.model = settings.OPENAI_MODEL

        if not self.api_key:
            raise GenerationError("OPENAI_API_KEY not configured")

    @property
    def model_name(self) -> str:
        return self.model

    def complete(self, system_directive: str, user_message: str) -> str:
        logger.info(f"Calling OpenAI-compatible API: model={self.model}, temp={self.temperature}")

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    f"{self.base_url}/chat/completions",
                    json={
                        "model": self.model,
                        "messages": self._messages(system_directive, user_message),
                        "temperature": self.temperature,
                        "max_tokens": self.max_tokens,
                    },
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    }
                )
                response.raise_for_status()
                data = response.json()

            choices = data.get("choices") or []
            if not choices:
                raise GenerationError("No choices in completion response")

            content = (choices[0].get("message") or {}).get("content", "")
            if not content:
                raise GenerationError("Empty response from completion API")

            if "usage" in data:
                logger.debug(f"Token usage: {data['usage']}")

            logger.info(f"Completion response: {len(content)} chars")
            return content

        except httpx.HTTPStatusError as e:
            logger.error(f"Completion HTTP error: {e}")
            raise GenerationError(f"Completion API error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("Completion request timed out")
            raise GenerationError("Completion API timed out")
        except httpx.RequestError as e:
            logger.error(f"Completion connection error: {e}")
            raise GenerationError("Could not connect to completion API")
        except (ValueError, AttributeError) as e:
            raise GenerationError(f"Invalid response from completion API: {e}")


# =============================================================================
# Generator Factory
# =============================================================================

_generator_instance: Optional[BaseGenerator] = None


def get_generator() -> BaseGenerator:
    """
    Get the configured generator instance.

    Uses LLM_PROVIDER setting to determine which backend to use:
    - "ollama" (default): Local Ollama inference
    - "openai": OpenAI-compatible API (Groq by default)
    """
    global _generator_instance

    if _generator_instance is not None:
        return _generator_instance

    provider = settings.LLM_PROVIDER

    if provider == 'openai':
        logger.info("Using OpenAI-compatible API for generation")
        _generator_instance = OpenAICompatibleGenerator()
    else:
        logger.info("Using Ollama for generation")
        _generator_instance = OllamaGenerator()

    return _generator_instance


def reset_generator():
    """Reset the cached generator instance. Useful for testing."""
    global _generator_instance
    _generator_instance = None
