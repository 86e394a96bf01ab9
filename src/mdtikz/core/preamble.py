"""Hierarchical preamble lookup: nearest preamble file from a document up to the vault root"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Protocol

from mdtikz.config import PREAMBLE_FILENAMES


logger = logging.getLogger(__name__)

MAX_ASCENT = 10


class ContentLookup(Protocol):
    """Path-keyed access to vault content; unknown paths yield None instead of raising."""

    def lookup(self, path: str) -> Optional[Any]: ...

    async def read(self, handle: Any) -> str: ...


class VaultLookup:
    """ContentLookup over a directory on disk, addressed with '/'-delimited vault paths."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def lookup(self, path: str) -> Optional[Path]:
        candidate = self.root.joinpath(*path.split("/"))
        return candidate if candidate.is_file() else None

    async def read(self, handle: Path) -> str:
        return await asyncio.to_thread(handle.read_text, encoding="utf-8")


def parent_dir(path: str) -> str:
    """Strip the last segment of a vault path; the root is ''."""
    return path.rsplit("/", 1)[0] if "/" in path else ""


def join_path(directory: str, name: str) -> str:
    return f"{directory}/{name}" if directory else name


class PreambleResolver:
    """Find the preamble that applies to a document.

    Directories are searched from the document's own directory towards the
    root. Within a directory the filenames are tried in priority order and the
    first readable one wins, before any parent directory is considered.
    """

    def __init__(
        self,
        store: ContentLookup,
        filenames: Optional[list[str]] = None,
        max_ascent: int = MAX_ASCENT,
        ):
        self.store = store
        self.filenames = list(filenames or PREAMBLE_FILENAMES)
        self.max_ascent = max_ascent

    async def _read_candidate(self, path: str) -> Optional[str]:
        """Return the content at path, or None on a miss or read failure."""
        try:
            handle = self.store.lookup(path)
            if handle is None:
                return None
            return await self.store.read(handle)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping unreadable preamble candidate %s: %s", path, e)
            return None

    async def resolve(self, document_path: str) -> str:
        """Return the nearest preamble text for document_path, or '' if none exists."""
        if not document_path:
            return ""

        directory = parent_dir(document_path.strip("/"))
        for _ in range(self.max_ascent):
            for name in self.filenames:
                path = join_path(directory, name)
                content = await self._read_candidate(path)
                if content is not None:
                    logger.debug("Preamble for %s resolved to %s", document_path, path)
                    return content
            if not directory:
                break
            directory = parent_dir(directory)
        return ""
