"""
Shared-ownership handle over one embedding backend.
"""

from typing import List

from .base import EmbeddingBackend


class EmbeddingHandle:
    """
    Cheap, cloneable reference to an embedding backend.

    Every clone points at the same backend instance, and so at the same
    network client. Cloning never re-reads configuration or re-authenticates.
    The handle is safe to use from several threads at once as long as the
    backend's client is.
    """

    __slots__ = ("_backend",)

    def __init__(self, backend: EmbeddingBackend):
        self._backend = backend

    @property
    def backend(self) -> EmbeddingBackend:
        return self._backend

    def clone(self) -> "EmbeddingHandle":
        """Return a new handle sharing this handle's backend."""
        return EmbeddingHandle(self._backend)

    __copy__ = clone

    def compute_embedding(self, text: str) -> List[float]:
        return self._backend.compute_embedding(text)

    def dimension(self) -> int:
        return self._backend.dimension()

    def __repr__(self) -> str:
        return f"EmbeddingHandle(backend={self._backend.name!r}, dimension={self.dimension()})"
