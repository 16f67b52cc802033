"""
Knowledge sources: turn a source description into ingest jobs.

Supports:
- PROJECT: a project tree, identities relative to the project root (Context)
- DIRECTORY: any directory tree (LocalFiles)
- FILE: one local file (LocalFiles)
- URL: one web page fetched over HTTP (Internet)

Directory walks honour ``.gitignore`` files and skip hidden entries.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

import pathspec
import requests

from ..core.exceptions import KnowledgeSourceError
from ..core.types import DataSource, IngestJob


logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = "buddy-knowledge/0.1"
DEFAULT_FETCH_TIMEOUT = 30


class SourceType(str, Enum):
    """Kind of source an ingest run reads from."""
    PROJECT = "project"
    DIRECTORY = "directory"
    FILE = "file"
    URL = "url"


@dataclass
class SourceSpec:
    """
    Description of what to ingest.

    Attributes:
        source_type: Kind of source
        location: Directory, file path or URL
        file_types: Extensions (``py``) or exact file names (``Makefile``)
            to include in directory walks; empty means every file
    """
    source_type: SourceType
    location: str
    file_types: List[str] = field(default_factory=list)

    @classmethod
    def project(cls, root: str = ".", file_types: Optional[Sequence[str]] = None) -> "SourceSpec":
        return cls(SourceType.PROJECT, str(root), list(file_types or []))

    @classmethod
    def directory(cls, path: str, file_types: Optional[Sequence[str]] = None) -> "SourceSpec":
        return cls(SourceType.DIRECTORY, str(path), list(file_types or []))

    @classmethod
    def file(cls, path: str) -> "SourceSpec":
        return cls(SourceType.FILE, str(path))

    @classmethod
    def url(cls, url: str) -> "SourceSpec":
        return cls(SourceType.URL, url)


def matches_file_types(name: str, file_types: Sequence[str]) -> bool:
    """True if ``name`` equals one of ``file_types`` or ends with ``.<type>``."""
    if not file_types:
        return True
    for wanted in file_types:
        if name == wanted or name.endswith(f".{wanted.lstrip('.')}"):
            return True
    return False


def _load_gitignore(directory: Path) -> Optional[pathspec.PathSpec]:
    gitignore = directory / ".gitignore"
    if not gitignore.is_file():
        return None
    try:
        with open(gitignore, "r", encoding="utf-8") as f:
            return pathspec.GitIgnoreSpec.from_lines(f)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Ignoring unreadable {gitignore}: {e}")
        return None


def _is_ignored(path: Path, is_dir: bool, specs: List[Tuple[Path, pathspec.PathSpec]]) -> bool:
    """Check ``path`` against every .gitignore from the walk root down to its parent."""
    for base, spec in specs:
        try:
            relative = path.relative_to(base).as_posix()
        except ValueError:
            continue
        if is_dir:
            relative += "/"
        if spec.match_file(relative):
            return True
    return False


def walk_files(root: Path, file_types: Sequence[str] = ()) -> Iterator[Path]:
    """
    Yield files under ``root`` in a stable order.

    Hidden files and directories are skipped, as is anything matched by a
    ``.gitignore`` in ``root`` or in a directory on the way down.

    Args:
        root: Directory to walk
        file_types: Extension or exact-name filter (empty = all files)

    Raises:
        KnowledgeSourceError: If ``root`` is not a directory
    """
    root = Path(root)
    if not root.is_dir():
        raise KnowledgeSourceError(f"Not a directory: {root}")

    # gitignore specs in effect per directory, inherited by subdirectories
    specs_by_dir = {}

    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        inherited = specs_by_dir.get(current, [])
        local = _load_gitignore(current)
        specs = inherited + [(current, local)] if local is not None else inherited

        kept_dirs = []
        for name in sorted(dirnames):
            child = current / name
            if name.startswith(".") or _is_ignored(child, True, specs):
                continue
            specs_by_dir[child] = specs
            kept_dirs.append(name)
        dirnames[:] = kept_dirs

        for name in sorted(filenames):
            path = current / name
            if name.startswith(".") or _is_ignored(path, False, specs):
                continue
            if matches_file_types(name, file_types):
                yield path

        specs_by_dir.pop(current, None)


def read_text_file(path: Path) -> str:
    """
    Read a UTF-8 text file.

    Raises:
        KnowledgeSourceError: If the file cannot be read or is not valid UTF-8
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise KnowledgeSourceError(f"Failed to read file '{path}': {e}") from e


def fetch_url(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> str:
    """
    Fetch the body of a web page as text.

    Args:
        url: Page URL
        session: Optional requests session to reuse
        timeout: Request timeout in seconds

    Raises:
        KnowledgeSourceError: On connection errors or non-2xx status codes
    """
    http = session or requests.Session()
    logger.info(f"Fetching URL: {url}")
    try:
        response = http.get(url, headers={"User-Agent": DEFAULT_USER_AGENT}, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise KnowledgeSourceError(f"Failed to fetch URL '{url}': {e}") from e
    finally:
        if session is None:
            http.close()
    return response.text


def _walk_jobs(root: Path, file_types: Sequence[str], as_context: bool) -> Iterator[IngestJob]:
    root = root.resolve()
    for path in walk_files(root, file_types):
        try:
            content = read_text_file(path)
        except KnowledgeSourceError as e:
            logger.warning(f"Skipping {path}: {e}")
            continue

        if as_context:
            data_source = DataSource.context(path.relative_to(root).as_posix())
        else:
            data_source = DataSource.local_files(str(path.absolute()))
        yield IngestJob(data_source=data_source, content=content)


def iter_jobs(
    spec: SourceSpec,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> Iterator[IngestJob]:
    """
    Enumerate the ingest jobs for a source.

    Files that fail to read during a directory walk are logged and skipped.
    A single named file is read on the worker, so a read failure is counted
    as a failed job. A URL that cannot be fetched raises.

    Raises:
        KnowledgeSourceError: If a directory is missing or a URL cannot be fetched
    """
    if spec.source_type == SourceType.PROJECT:
        yield from _walk_jobs(Path(spec.location), spec.file_types, as_context=True)

    elif spec.source_type == SourceType.DIRECTORY:
        yield from _walk_jobs(Path(spec.location), spec.file_types, as_context=False)

    elif spec.source_type == SourceType.FILE:
        path = Path(spec.location)
        yield IngestJob(
            DataSource.local_files(str(path.absolute())),
            loader=partial(read_text_file, path),
        )

    elif spec.source_type == SourceType.URL:
        content = fetch_url(spec.location, session=session, timeout=timeout)
        yield IngestJob(DataSource.internet(spec.location), content)

    else:
        raise KnowledgeSourceError(f"Unsupported source type: {spec.source_type!r}")
