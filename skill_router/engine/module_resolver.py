"""Module resolver: MatchResults -> ordered, deterministic module selection.

Ordering, in priority:
1. higher total weighted score
2. more distinct matched keywords
3. at least one symbol-class keyword (qualified path or identifier) beats
   generic-only matches
4. module id, lexicographic

Hierarchy: the root is the fallback when no other module matched, and is
otherwise appended last as supplementary context. The result is never empty
and holds the root exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from .types import CorpusSnapshot, MatchReason, MatchResult, ResolvedModule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolverConfig:
    max_modules: int = 3  # matched non-root modules kept ahead of the root


def ranking_key(result: MatchResult) -> tuple[float, int, int, str]:
    return (
        -round(result.score, 6),
        -result.match_count,
        0 if result.has_symbol_match else 1,
        result.module_id,
    )


def rank_matches(results: Iterable[MatchResult]) -> list[MatchResult]:
    return sorted(results, key=ranking_key)


def resolve_modules(
    results: Iterable[MatchResult],
    corpus: CorpusSnapshot,
    config: ResolverConfig | None = None,
) -> list[ResolvedModule]:
    config = config or ResolverConfig()
    root_id = corpus.root_id

    root_match: MatchResult | None = None
    ranked: list[MatchResult] = []
    for r in rank_matches(results):
        if r.module_id == root_id:
            root_match = r
        elif r.score > 0 and corpus.has_module(r.module_id):
            ranked.append(r)

    if len(ranked) > config.max_modules:
        logger.debug(
            "Dropping %d lower-ranked modules: %s",
            len(ranked) - config.max_modules,
            [r.module_id for r in ranked[config.max_modules:]],
        )
    selected = ranked[: config.max_modules]

    out = [
        ResolvedModule(
            module_id=r.module_id,
            rank=i,
            score=r.score,
            matched=r.matched,
            reason=MatchReason.MATCH,
        )
        for i, r in enumerate(selected)
    ]
    out.append(
        ResolvedModule(
            module_id=root_id,
            rank=len(out),
            score=root_match.score if root_match else 0.0,
            matched=root_match.matched if root_match else (),
            reason=MatchReason.CONTEXT if selected else MatchReason.FALLBACK,
        )
    )
    return out
