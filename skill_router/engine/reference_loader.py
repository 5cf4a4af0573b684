"""Reference loader: lazy, de-duplicated loading of reference document bodies.

The document cache is keyed by the store's cache key and is single-flight:
the first request for a key performs the read, concurrent requests for the
same key wait on the same future and get the same result. Successful loads
stay cached for the life of the process (documents are immutable once the
corpus is loaded). Failed loads are handed to every waiter, then dropped so
a later request retries. The cache only ever holds declared documents, so it
is bounded by corpus size.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Sequence

from .document_store import DocumentStore
from .types import CorpusSnapshot, DocumentLoadError, LoadedDocument, ReferenceDocument, UnknownDocumentError

logger = logging.getLogger(__name__)

DocumentOutcome = LoadedDocument | DocumentLoadError


class DocumentCache:
    """Keyed single-flight cache of document text."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Future[str]] = {}
        self._loads = 0
        self._hits = 0

    def get_or_load(self, key: str, load: Callable[[], str]) -> str:
        with self._lock:
            fut = self._entries.get(key)
            owner = fut is None
            if owner:
                fut = Future()
                self._entries[key] = fut
                self._loads += 1
            else:
                self._hits += 1

        if not owner:
            return fut.result()

        try:
            content = load()
        except BaseException as err:
            with self._lock:
                if self._entries.get(key) is fut:
                    del self._entries[key]
            fut.set_exception(err)
            raise
        fut.set_result(content)
        return content

    def __contains__(self, key: object) -> bool:
        with self._lock:
            fut = self._entries.get(key)  # type: ignore[arg-type]
            return fut is not None and fut.done() and fut.exception() is None

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"entries": len(self._entries), "loads": self._loads, "hits": self._hits}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._loads = 0
            self._hits = 0


# Process-wide cache instance
_document_cache: DocumentCache | None = None
_document_cache_lock = threading.Lock()


def get_document_cache() -> DocumentCache:
    """Get or create the process-wide document cache."""
    global _document_cache
    with _document_cache_lock:
        if _document_cache is None:
            _document_cache = DocumentCache()
        return _document_cache


def reset_document_cache() -> None:
    """Drop the process-wide cache (tests only; documents never need invalidation)."""
    global _document_cache
    with _document_cache_lock:
        _document_cache = None


class ReferenceLoader:
    """Serves reference bodies, but only through a module's declared set."""

    def __init__(
        self,
        corpus: CorpusSnapshot,
        store: DocumentStore,
        *,
        cache: DocumentCache | None = None,
        max_workers: int = 8,
    ) -> None:
        self.corpus = corpus
        self.store = store
        self.cache = cache if cache is not None else get_document_cache()
        self.max_workers = max(1, max_workers)

    def _declared(self, path: str, module_id: str | None) -> ReferenceDocument:
        doc = self.corpus.documents.get(path)
        if doc is None or (module_id is not None and doc.module_id != module_id):
            raise UnknownDocumentError(path, module_id)
        return doc

    def _read(self, path: str) -> str:
        try:
            content = self.store.read(path)
        except (OSError, UnicodeDecodeError) as err:
            logger.warning("Failed to load reference document %s: %s", path, err)
            raise DocumentLoadError(path, str(err)) from err
        logger.debug("Loaded reference document %s (%d chars)", path, len(content))
        return content

    def load(self, path: str, *, module_id: str | None = None) -> LoadedDocument:
        """Load one declared document.

        Raises:
            UnknownDocumentError: the path is not declared (by ``module_id``, when given).
            DocumentLoadError: the declared document could not be read.
        """
        doc = self._declared(path, module_id)
        content = self.cache.get_or_load(self.store.cache_key(path), lambda: self._read(path))
        return LoadedDocument(path=doc.path, module_id=doc.module_id, content=content)

    def _outcome(self, doc: ReferenceDocument) -> DocumentOutcome:
        try:
            return self.load(doc.path, module_id=doc.module_id)
        except DocumentLoadError as err:
            return err

    def load_many(self, documents: Sequence[ReferenceDocument]) -> list[DocumentOutcome]:
        """Load several declared documents; results keep the input order.

        Distinct paths load in parallel. A failed document is returned as its
        DocumentLoadError in place, the others are unaffected.
        """
        for doc in documents:
            self._declared(doc.path, doc.module_id)
        if len(documents) <= 1 or self.max_workers == 1:
            return [self._outcome(doc) for doc in documents]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(documents))) as executor:
            return list(executor.map(self._outcome, documents))

    def load_module(self, module_id: str) -> list[DocumentOutcome]:
        """All documents of a module, in declaration order."""
        return self.load_many(self.corpus.documents_of(module_id))
