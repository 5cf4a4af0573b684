"""Query matcher: raw text -> unordered MatchResults.

Two explicit strategies, chosen per keyword by script class:
- Latin keywords match on Latin word boundaries (``fs`` is not found in ``fsx``
  but is found in ``std::fs`` and in ``fs的用法``)
- CJK keywords match by substring containment, since CJK text has no
  whitespace-delimited tokens

Pure function of (query, index): no shared state is touched.
"""

from __future__ import annotations

from typing import Callable

from ..common.text_normalization import cjk_spans, latin_tokens, normalize_text
from .trigger_index import IndexedKeyword, TriggerIndex
from .types import KeywordMatch, MatchResult, Query, ScriptClass

KeywordStrategy = Callable[[IndexedKeyword, Query], bool]


def parse_query(raw: str | None) -> Query:
    normalized = normalize_text(raw)
    return Query(
        raw=raw or "",
        normalized=normalized,
        tokens=tuple(latin_tokens(normalized)),
        cjk_spans=tuple(cjk_spans(normalized)),
    )


def latin_boundary_match(keyword: IndexedKeyword, query: Query) -> bool:
    if keyword.pattern is None:
        return False
    return keyword.pattern.search(query.normalized) is not None


def cjk_substring_match(keyword: IndexedKeyword, query: Query) -> bool:
    if keyword.pure_cjk or keyword.pattern is None:
        return any(keyword.normalized in span for span in query.cjk_spans)
    # Mixed-script keyword ("rust 所有权"): substring of the whole query, with
    # word boundaries on its Latin edges.
    return keyword.pattern.search(query.normalized) is not None


_STRATEGIES: dict[ScriptClass, KeywordStrategy] = {
    ScriptClass.LATIN: latin_boundary_match,
    ScriptClass.CJK: cjk_substring_match,
}


def matched_keywords(query: Query, index: TriggerIndex) -> list[IndexedKeyword]:
    """Indexed keywords contained in the query, in index order."""
    if query.is_empty:
        return []
    return [kw for kw in index.keywords.values() if _STRATEGIES[kw.script](kw, query)]


def match_query(query: str | Query | None, index: TriggerIndex) -> list[MatchResult]:
    """Score every module with at least one matched keyword.

    An empty query yields no results; the resolver turns that into the root fallback.
    """
    q = query if isinstance(query, Query) else parse_query(query)

    per_module: dict[str, list[KeywordMatch]] = {}
    for kw in matched_keywords(q, index):
        for entry in kw.entries:
            per_module.setdefault(entry.module_id, []).append(
                KeywordMatch(
                    keyword=entry.keyword.raw,
                    normalized=entry.keyword.normalized,
                    specificity=entry.keyword.specificity,
                    weight=entry.keyword.weight,
                )
            )

    results: list[MatchResult] = []
    for module_id, matches in per_module.items():
        results.append(
            MatchResult(
                module_id=module_id,
                matched=tuple(matches),
                score=round(sum(m.weight for m in matches), 6),
            )
        )
    return results
