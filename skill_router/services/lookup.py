from __future__ import annotations

import functools
from pathlib import Path
from typing import Optional

from ..common.config_loader import Settings, load_settings
from ..engine.result_assembler import LookupResult
from ..engine.skill_router import SkillRouter


@functools.lru_cache(maxsize=8)
def _router_for(corpus_root: str, settings: Settings) -> SkillRouter:
    return SkillRouter.from_corpus_root(Path(corpus_root), settings=settings)


def build_router(*, settings: Settings | None = None, corpus_root: Path | str | None = None) -> SkillRouter:
    """Router for the configured corpus; built once per (corpus root, settings).

    The index is rebuilt from metadata on every new process, never persisted.
    """
    resolved_settings = settings or load_settings()
    root = Path(corpus_root) if corpus_root is not None else resolved_settings.corpus.root
    return _router_for(str(root.resolve()), resolved_settings)


def clear_router_cache() -> None:
    _router_for.cache_clear()


def lookup(
    *,
    query: str,
    router: Optional[SkillRouter] = None,
    settings: Settings | None = None,
) -> LookupResult:
    """Resolve a free-text query to modules and their reference documents.

    Always returns a non-empty, best-effort result: an empty or unmatched query
    falls back to the root module, unreadable documents are reported in
    ``errors`` next to the documents that did load.
    """
    resolved_router = router or build_router(settings=settings)
    return resolved_router.lookup(query)
