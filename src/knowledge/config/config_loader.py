"""
Configuration loader for the knowledge module.

Reads ``.buddy/config.yaml`` (searched upward from the working directory),
falls back to defaults, then applies environment overrides.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from ..core.exceptions import KnowledgeConfigError


logger = logging.getLogger(__name__)


CONFIG_DIR_NAME = ".buddy"
CONFIG_FILE_NAME = "config.yaml"

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-large"
DEFAULT_TIMEOUT_SECS = 30
DEFAULT_WORKERS = 10
DEFAULT_CHANNEL_CAPACITY = 10


class BackendKind(str, Enum):
    """Closed set of embedding backend kinds."""
    REMOTE_API = "remote_api"
    LOCAL_INFERENCE = "local_inference"

    @classmethod
    def parse(cls, value: Any) -> "BackendKind":
        """
        Resolve a backend kind from config text.

        Accepts the enum values and the provider aliases ``OpenAI`` and
        ``Ollama`` (case-insensitive).

        Raises:
            KnowledgeConfigError: If the value names no known backend
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text in _BACKEND_ALIASES:
            return _BACKEND_ALIASES[text]
        raise KnowledgeConfigError(f"Unknown embedding backend: {value!r}")


_BACKEND_ALIASES = {
    "remote_api": BackendKind.REMOTE_API,
    "openai": BackendKind.REMOTE_API,
    "local_inference": BackendKind.LOCAL_INFERENCE,
    "ollama": BackendKind.LOCAL_INFERENCE,
}


class ConnectionMode(str, Enum):
    """Lifetime of the vector store's database connection."""
    ON_DEMAND = "on_demand"
    PERSISTENT = "persistent"

    @classmethod
    def parse(cls, value: Any) -> "ConnectionMode":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace("-", "_")
        if text == "ondemand":
            text = "on_demand"
        try:
            return cls(text)
        except ValueError:
            raise KnowledgeConfigError(f"Unknown connection mode: {value!r}") from None


@dataclass
class ModelDefinition:
    """
    One entry of the models table.

    Attributes:
        name: Name the configuration refers to the model by
        api_name: Model identifier sent to the provider
        backend: Backend kind that serves the model
        url: Optional base URL (local inference)
        dimensions: Optional vector width override
        max_input_bytes: Optional maximum input length override
    """
    name: str
    api_name: str
    backend: BackendKind = BackendKind.REMOTE_API
    url: Optional[str] = None
    dimensions: Optional[int] = None
    max_input_bytes: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelDefinition":
        """Build a model definition from a ``models[]`` config entry."""
        if not isinstance(data, dict) or not data.get("name"):
            raise KnowledgeConfigError(f"Model entry needs a name: {data!r}")

        dimensions = data.get("dimensions")
        max_input_bytes = data.get("max_input_bytes")
        for key, value in (("dimensions", dimensions), ("max_input_bytes", max_input_bytes)):
            if value is not None and (not isinstance(value, int) or value <= 0):
                raise KnowledgeConfigError(
                    f"Model {data['name']!r}: {key} must be a positive integer, got {value!r}"
                )

        return cls(
            name=data["name"],
            api_name=data.get("api_name") or data["name"],
            backend=BackendKind.parse(data.get("backend", BackendKind.REMOTE_API)),
            url=data.get("url"),
            dimensions=dimensions,
            max_input_bytes=max_input_bytes,
        )


def default_models() -> List[ModelDefinition]:
    """Built-in models available without any configuration file."""
    return [
        ModelDefinition("text-embedding-3-large", "text-embedding-3-large"),
        ModelDefinition("text-embedding-3-small", "text-embedding-3-small"),
        ModelDefinition("text-embedding-ada-002", "text-embedding-ada-002"),
        ModelDefinition(
            "mxbai-embed-large",
            "mxbai-embed-large",
            backend=BackendKind.LOCAL_INFERENCE,
        ),
    ]


def default_data_dir() -> Path:
    """Per-user data directory (``$XDG_DATA_HOME/buddy`` or ``~/.local/share/buddy``)."""
    base = os.environ.get("XDG_DATA_HOME")
    if base:
        return Path(base) / "buddy"
    return Path.home() / ".local" / "share" / "buddy"


@dataclass
class KnowledgeConfig:
    """
    Configuration for the knowledge subsystem.

    Passed explicitly into builders; there is no process-wide instance.
    """
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    timeout_secs: float = DEFAULT_TIMEOUT_SECS
    models: List[ModelDefinition] = field(default_factory=default_models)
    connection_mode: ConnectionMode = ConnectionMode.PERSISTENT
    workers: int = DEFAULT_WORKERS
    channel_capacity: int = DEFAULT_CHANNEL_CAPACITY
    file_types: List[str] = field(default_factory=list)
    data_dir: Path = field(default_factory=default_data_dir)
    console_log_level: str = "Warn"
    file_log_level: str = "Info"
    config_path: Optional[Path] = None

    def __post_init__(self):
        self.connection_mode = ConnectionMode.parse(self.connection_mode)
        self.data_dir = Path(self.data_dir)
        if not isinstance(self.workers, int) or self.workers <= 0:
            raise KnowledgeConfigError(f"workers must be a positive integer, got {self.workers!r}")
        if not isinstance(self.channel_capacity, int) or self.channel_capacity <= 0:
            raise KnowledgeConfigError(
                f"channel_capacity must be a positive integer, got {self.channel_capacity!r}"
            )
        if (
            isinstance(self.timeout_secs, bool)
            or not isinstance(self.timeout_secs, (int, float))
            or self.timeout_secs <= 0
        ):
            raise KnowledgeConfigError(f"timeout_secs must be a positive number, got {self.timeout_secs!r}")

    @property
    def knowledge_dir(self) -> Path:
        """Namespace directory holding the knowledge database."""
        return self.data_dir / "knowledge"

    @property
    def log_dir(self) -> Path:
        """Directory for the file log (next to the config file when there is one)."""
        if self.config_path is not None:
            return self.config_path.parent / "logs"
        return self.data_dir / "logs"

    def get_model(self, name: Optional[str] = None) -> ModelDefinition:
        """
        Look up a model in the models table.

        Args:
            name: Model name; defaults to the selected embedding model

        Raises:
            KnowledgeConfigError: If no model of that name is declared
        """
        wanted = name or self.embedding_model
        for model in self.models:
            if model.name == wanted:
                return model
        known = ", ".join(m.name for m in self.models) or "none"
        raise KnowledgeConfigError(f"Unknown embedding model {wanted!r} (known: {known})")


def find_config_file(start: Optional[Path] = None) -> Optional[Path]:
    """
    Find ``.buddy/config.yaml`` in ``start`` or any of its parents.

    Returns:
        Path of the config file, or None if there is none
    """
    current = Path(start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_DIR_NAME / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _merge_models(configured: List[Dict[str, Any]]) -> List[ModelDefinition]:
    """Configured models replace built-ins of the same name."""
    models = {m.name: m for m in default_models()}
    for entry in configured:
        model = ModelDefinition.from_dict(entry)
        models[model.name] = model
    return list(models.values())


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise KnowledgeConfigError(f"Config file not found: {config_path}")

    logger.info(f"Loading config from: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise KnowledgeConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise KnowledgeConfigError(f"Config file {config_path} must contain a mapping")
    return data


def _apply_env_overrides(values: Dict[str, Any]) -> None:
    """Apply environment variable overrides to the raw values."""
    embedding_model = os.environ.get("BUDDY_EMBEDDING_MODEL")
    if embedding_model:
        values["embedding_model"] = embedding_model

    knowledge_dir = os.environ.get("BUDDY_KNOWLEDGE_DIR")
    if knowledge_dir:
        values["data_dir"] = knowledge_dir

    connection_mode = os.environ.get("BUDDY_CONNECTION_MODE")
    if connection_mode:
        values["connection_mode"] = connection_mode

    workers = os.environ.get("BUDDY_KNOWLEDGE_WORKERS")
    if workers:
        try:
            values["workers"] = int(workers)
        except ValueError:
            raise KnowledgeConfigError(
                f"BUDDY_KNOWLEDGE_WORKERS must be an integer, got {workers!r}"
            ) from None

    ollama_url = os.environ.get("OLLAMA_BASE_URL")
    if ollama_url:
        for model in values["models"]:
            if model.backend == BackendKind.LOCAL_INFERENCE and not model.url:
                model.url = ollama_url


def load_config(config_path: Optional[Path] = None, load_env_file: bool = True) -> KnowledgeConfig:
    """
    Load the knowledge configuration.

    Args:
        config_path: Explicit YAML file; when None the file is searched for
            upward from the working directory and defaults are used if absent
        load_env_file: Whether to load a ``.env`` file first (OPENAI_API_KEY)

    Returns:
        Validated KnowledgeConfig

    Raises:
        KnowledgeConfigError: On unreadable files or invalid values
    """
    if load_env_file:
        load_dotenv()

    if config_path is None:
        config_path = find_config_file()
    else:
        config_path = Path(config_path)

    raw = _read_yaml(config_path) if config_path else {}
    if not config_path:
        logger.debug("No config file found, using defaults")

    ai = raw.get("ai") or {}
    knowledge = raw.get("knowledge") or {}

    values: Dict[str, Any] = {
        "embedding_model": ai.get("embedding_model", DEFAULT_EMBEDDING_MODEL),
        "timeout_secs": ai.get("timeout_secs", DEFAULT_TIMEOUT_SECS),
        "models": _merge_models(raw.get("models") or []),
        "connection_mode": knowledge.get("connection_mode", ConnectionMode.PERSISTENT),
        "workers": knowledge.get("workers", DEFAULT_WORKERS),
        "channel_capacity": knowledge.get("channel_capacity", DEFAULT_CHANNEL_CAPACITY),
        "file_types": list(knowledge.get("file_types") or []),
        "console_log_level": raw.get("console_log_level", "Warn"),
        "file_log_level": raw.get("file_log_level", "Info"),
        "config_path": config_path,
    }
    if knowledge.get("data_dir"):
        values["data_dir"] = Path(knowledge["data_dir"]).expanduser()

    _apply_env_overrides(values)

    return KnowledgeConfig(**values)
