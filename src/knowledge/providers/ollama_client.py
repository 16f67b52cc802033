"""
Ollama embedding provider.

Thin HTTP client for Ollama's ``/api/embed`` endpoint and the local
inference backend built on it.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..config.config_loader import ModelDefinition
from ..core.exceptions import KnowledgeBackendError
from .base import EmbeddingBackend


logger = logging.getLogger(__name__)


DEFAULT_OLLAMA_URL = "http://localhost:11434"
OLLAMA_DEFAULT_DIMENSION = 1024
OLLAMA_MAX_INPUT_BYTES = 8192


@dataclass
class EmbeddingResponse:
    """
    Response from Ollama embeddings API.

    Attributes:
        embeddings: List of embedding vectors (each is list of floats)
        model: Model that generated the embeddings
        raw_response: Full response JSON
        total_duration: Total time in nanoseconds
        load_duration: Model load time in nanoseconds
    """
    embeddings: List[List[float]] = field(default_factory=list)
    model: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None
    total_duration: Optional[int] = None
    load_duration: Optional[int] = None


class OllamaClient:
    """
    HTTP client for an Ollama server.

    Example:
        >>> client = OllamaClient("http://localhost:11434")
        >>> response = client.embed(["Hello world"], model="mxbai-embed-large")
        >>> len(response.embeddings)
        1
    """

    def __init__(self, base_url: str = DEFAULT_OLLAMA_URL, timeout_secs: float = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_secs

    def embed(self, texts: List[str], model: str) -> EmbeddingResponse:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: Texts to embed
            model: Embedding model to use

        Returns:
            EmbeddingResponse with one vector per input

        Raises:
            KnowledgeBackendError: If the request fails or the body is not JSON
        """
        url = f"{self.base_url}/api/embed"
        payload = {"model": model, "input": texts}

        try:
            request = Request(
                url,
                data=json.dumps(payload).encode("utf-8"),
                headers={"Content-Type": "application/json"},
                method="POST",
            )

            logger.debug(f"Making embedding request to {url} with model {model}")

            with urlopen(request, timeout=self.timeout) as response:
                result = json.loads(response.read().decode("utf-8"))

        except HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else str(e)
            logger.error(f"HTTP error from Ollama embed: {e.code} - {error_body}")
            raise KnowledgeBackendError(
                f"Ollama embed API error: {e.code} - {error_body}",
                backend="ollama",
                status_code=e.code,
            ) from e
        except URLError as e:
            logger.error(f"Failed to connect to Ollama for embedding: {e}")
            raise KnowledgeBackendError(
                f"Failed to connect to Ollama at {self.base_url}: {e}",
                backend="ollama",
            ) from e
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON response from Ollama embed: {e}")
            raise KnowledgeBackendError(
                f"Invalid JSON response from Ollama embed: {e}",
                backend="ollama",
            ) from e
        except OSError as e:
            # Socket timeouts surface as OSError subclasses outside URLError
            logger.error(f"Ollama embed request failed: {e}")
            raise KnowledgeBackendError(
                f"Ollama embed request failed: {e}",
                backend="ollama",
            ) from e

        if not isinstance(result, dict):
            raise KnowledgeBackendError("Malformed response from Ollama embed", backend="ollama")

        return EmbeddingResponse(
            embeddings=result.get("embeddings") or [],
            model=result.get("model", model),
            raw_response=result,
            total_duration=result.get("total_duration"),
            load_duration=result.get("load_duration"),
        )


class OllamaEmbeddingBackend(EmbeddingBackend):
    """Local inference backend served by Ollama."""

    name = "ollama"

    def __init__(
        self,
        model: ModelDefinition,
        timeout_secs: float = 30,
        client: Optional[OllamaClient] = None,
    ):
        self.model = model
        self._dimension = model.dimensions or OLLAMA_DEFAULT_DIMENSION
        self._max_input_bytes = model.max_input_bytes or OLLAMA_MAX_INPUT_BYTES
        self.client = client or OllamaClient(model.url or DEFAULT_OLLAMA_URL, timeout_secs)

    @property
    def max_input_bytes(self) -> int:
        return self._max_input_bytes

    def dimension(self) -> int:
        return self._dimension

    def _embed(self, text: str) -> List[float]:
        response = self.client.embed([text], model=self.model.api_name)
        if not response.embeddings or not isinstance(response.embeddings[0], list):
            raise KnowledgeBackendError("Ollama returned no embedding", backend=self.name)
        return response.embeddings[0]
