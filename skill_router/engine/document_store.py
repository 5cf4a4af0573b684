"""Document stores: map a declared reference path to raw text.

The engine never builds paths on its own. Stores only answer for paths that a
module declared, and the metadata loader only declares paths inside the corpus
root.
"""

from __future__ import annotations

import posixpath
import uuid
from pathlib import Path
from typing import Mapping, Protocol


class DocumentStore(Protocol):
    def size(self, path: str) -> int:
        """Byte size of the stored document; raises FileNotFoundError when absent."""

    def read(self, path: str) -> str:
        """Full document text; raises OSError when unreadable."""

    def cache_key(self, path: str) -> str:
        """Process-wide unique key for the document."""


def is_safe_relative(path: str) -> bool:
    """True for a non-empty relative posix path that stays inside its root."""
    if not path or posixpath.isabs(path) or "\\" in path:
        return False
    norm = posixpath.normpath(path)
    return norm != "." and norm != ".." and not norm.startswith("../")


class FileDocumentStore:
    """Reference documents as UTF-8 files under a corpus root."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        if not is_safe_relative(path):
            raise FileNotFoundError(f"Reference path escapes the corpus root: {path!r}")
        # Symlinks are followed, so the target must still sit under the root.
        resolved = (self.root / path).resolve()
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise FileNotFoundError(f"Reference path escapes the corpus root: {path!r}") from None
        return resolved

    def size(self, path: str) -> int:
        p = self._resolve(path)
        if not p.is_file():
            raise FileNotFoundError(f"Reference document not found: {p}")
        return p.stat().st_size

    def read(self, path: str) -> str:
        # No newline translation: content stays byte-identical to the file.
        return self._resolve(path).read_bytes().decode("utf-8")

    def cache_key(self, path: str) -> str:
        return str(self._resolve(path))

    def __repr__(self) -> str:
        return f"FileDocumentStore({str(self.root)!r})"


class InMemoryDocumentStore:
    """Documents held in a mapping; used by hosts that embed their corpus."""

    def __init__(self, documents: Mapping[str, str]) -> None:
        self._documents = dict(documents)
        self._token = uuid.uuid4().hex  # never reused, unlike id(self)

    def size(self, path: str) -> int:
        if path not in self._documents:
            raise FileNotFoundError(f"Reference document not found: {path}")
        return len(self._documents[path].encode("utf-8"))

    def read(self, path: str) -> str:
        if path not in self._documents:
            raise FileNotFoundError(f"Reference document not found: {path}")
        return self._documents[path]

    def cache_key(self, path: str) -> str:
        return f"memory:{self._token}:{path}"
