"""
Embedding backend interface.
"""

import logging
from abc import ABC, abstractmethod
from typing import List

from ..core.exceptions import KnowledgeBackendError
from ..core.utils import truncate_to_max_bytes


logger = logging.getLogger(__name__)


class EmbeddingBackend(ABC):
    """
    Computes fixed-length vectors from text.

    Subclasses implement ``_embed`` for input already cut to
    ``max_input_bytes``; ``compute_embedding`` does the truncation and checks
    the width of what comes back. Backends never retry.
    """

    name: str = "backend"

    @property
    @abstractmethod
    def max_input_bytes(self) -> int:
        """Largest UTF-8 input the provider accepts."""

    @abstractmethod
    def dimension(self) -> int:
        """Width of every vector this backend returns."""

    @abstractmethod
    def _embed(self, text: str) -> List[float]:
        """Call the provider for one already-truncated input."""

    def compute_embedding(self, text: str) -> List[float]:
        """
        Compute the embedding of ``text``.

        Oversized input is truncated at a character boundary before it is
        sent.

        Raises:
            KnowledgeBackendError: On transport, provider or width errors
        """
        vector = self._embed(truncate_to_max_bytes(text, self.max_input_bytes))

        try:
            values = [float(x) for x in vector]
        except (TypeError, ValueError) as e:
            raise KnowledgeBackendError(
                f"{self.name} returned a malformed vector: {e}",
                backend=self.name,
            ) from e

        expected = self.dimension()
        if len(values) != expected:
            raise KnowledgeBackendError(
                f"{self.name} returned a vector of width {len(values)}, expected {expected}",
                backend=self.name,
            )
        return values
