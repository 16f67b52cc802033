"""
Remote embedding backend for the OpenAI embeddings API.
"""

import logging
import os
from typing import List, Optional

from openai import OpenAI, OpenAIError

from ..config.config_loader import ModelDefinition
from ..core.exceptions import KnowledgeBackendError, KnowledgeConfigError
from .base import EmbeddingBackend


logger = logging.getLogger(__name__)


# Native output width of the embedding models the API serves
KNOWN_MODEL_DIMENSIONS = {
    "text-embedding-3-large": 3072,
    "text-embedding-3-small": 1536,
    "text-embedding-ada-002": 1536,
}

OPENAI_MAX_INPUT_BYTES = 32000


class OpenAIEmbeddingBackend(EmbeddingBackend):
    """
    Embedding backend calling ``client.embeddings.create``.

    The client is created once here and shared by every handle cloned from
    this backend.

    Example:
        >>> backend = OpenAIEmbeddingBackend(ModelDefinition("small", "text-embedding-3-small"))
        >>> len(backend.compute_embedding("hello"))
        1536
    """

    name = "openai"

    def __init__(
        self,
        model: ModelDefinition,
        api_key: Optional[str] = None,
        timeout_secs: float = 30,
        client: Optional[OpenAI] = None,
    ):
        """
        Initialize the backend.

        Args:
            model: Models-table entry; ``api_name`` is sent to the API
            api_key: API key (defaults to OPENAI_API_KEY)
            timeout_secs: Per-request timeout
            client: Pre-built client (tests)

        Raises:
            KnowledgeConfigError: If the dimension cannot be resolved or no
                API key is available
        """
        self.model = model
        self._dimension = model.dimensions or KNOWN_MODEL_DIMENSIONS.get(model.api_name)
        if self._dimension is None:
            raise KnowledgeConfigError(
                f"Unknown dimension for OpenAI model {model.api_name!r}; "
                f"set 'dimensions' on model {model.name!r}"
            )
        self._max_input_bytes = model.max_input_bytes or OPENAI_MAX_INPUT_BYTES

        if client is None:
            api_key = api_key or os.environ.get("OPENAI_API_KEY")
            if not api_key:
                raise KnowledgeConfigError("OPENAI_API_KEY is not set")
            client = OpenAI(api_key=api_key, timeout=timeout_secs, max_retries=0)
        self.client = client

    @property
    def max_input_bytes(self) -> int:
        return self._max_input_bytes

    def dimension(self) -> int:
        return self._dimension

    def _embed(self, text: str) -> List[float]:
        kwargs = {"model": self.model.api_name, "input": text}
        # Only the v3 models accept a reduced width
        if self.model.dimensions and self.model.dimensions != KNOWN_MODEL_DIMENSIONS.get(
            self.model.api_name
        ):
            kwargs["dimensions"] = self.model.dimensions

        logger.debug(f"Requesting embedding from OpenAI with model {self.model.api_name}")

        try:
            response = self.client.embeddings.create(**kwargs)
        except OpenAIError as e:
            logger.error(f"OpenAI embedding request failed: {e}")
            raise KnowledgeBackendError(
                f"OpenAI embedding request failed: {e}",
                backend=self.name,
                status_code=getattr(e, "status_code", None),
            ) from e

        if not response.data:
            raise KnowledgeBackendError("OpenAI returned no embedding data", backend=self.name)
        return list(response.data[0].embedding)
