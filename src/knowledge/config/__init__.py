"""
Configuration for the knowledge module.
"""

from .config_loader import (
    BackendKind,
    ConnectionMode,
    ModelDefinition,
    KnowledgeConfig,
    default_models,
    find_config_file,
    load_config,
)

__all__ = [
    "BackendKind",
    "ConnectionMode",
    "ModelDefinition",
    "KnowledgeConfig",
    "default_models",
    "find_config_file",
    "load_config",
]
