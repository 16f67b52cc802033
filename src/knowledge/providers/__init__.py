"""
Embedding providers for the knowledge module.

Contains the backend interface, the OpenAI and Ollama backends, the shared
handle and the factory that picks a backend from configuration.
"""

from .base import EmbeddingBackend
from .handle import EmbeddingHandle
from .ollama_client import OllamaClient, OllamaEmbeddingBackend
from .openai_backend import OpenAIEmbeddingBackend, KNOWN_MODEL_DIMENSIONS
from .factory import create_backend, build_embedding_handle

__all__ = [
    "EmbeddingBackend",
    "EmbeddingHandle",
    "OllamaClient",
    "OllamaEmbeddingBackend",
    "OpenAIEmbeddingBackend",
    "KNOWN_MODEL_DIMENSIONS",
    "create_backend",
    "build_embedding_handle",
]
