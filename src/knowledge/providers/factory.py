"""
Backend factory: resolves a configured model name to an embedding backend.
"""

import logging
from typing import Optional

from ..config.config_loader import BackendKind, KnowledgeConfig, ModelDefinition
from ..core.exceptions import KnowledgeConfigError
from .base import EmbeddingBackend
from .handle import EmbeddingHandle
from .ollama_client import OllamaEmbeddingBackend
from .openai_backend import OpenAIEmbeddingBackend


logger = logging.getLogger(__name__)


def create_backend(model: ModelDefinition, timeout_secs: float = 30) -> EmbeddingBackend:
    """
    Create the backend for a models-table entry.

    Raises:
        KnowledgeConfigError: If the backend kind is not supported
    """
    if model.backend == BackendKind.REMOTE_API:
        return OpenAIEmbeddingBackend(model, timeout_secs=timeout_secs)
    if model.backend == BackendKind.LOCAL_INFERENCE:
        return OllamaEmbeddingBackend(model, timeout_secs=timeout_secs)
    raise KnowledgeConfigError(f"Unsupported backend kind: {model.backend!r}")


def build_embedding_handle(
    config: KnowledgeConfig,
    model_name: Optional[str] = None,
) -> EmbeddingHandle:
    """
    Build the shared embedding handle for a configuration.

    Args:
        config: Knowledge configuration
        model_name: Model to use instead of ``config.embedding_model``

    Returns:
        Handle over a freshly created backend

    Raises:
        KnowledgeConfigError: If the model is not in the models table
    """
    model = config.get_model(model_name)
    backend = create_backend(model, timeout_secs=config.timeout_secs)
    logger.info(
        f"Using embedding model {model.name} ({backend.name}, dimension {backend.dimension()})"
    )
    return EmbeddingHandle(backend)
