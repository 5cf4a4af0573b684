"""Trigger index: normalized keyword -> ordered candidate modules.

Built once per corpus snapshot and never mutated afterwards; a changed corpus
gets a new index. Insertion order is module load order, then keyword
declaration order, so two builds from the same snapshot are identical
(see ``TriggerIndex.fingerprint``).
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from ..common.config_loader import IndexSettings, IndexWeights
from ..common.text_normalization import (
    contains_cjk,
    is_pure_cjk,
    latin_boundary_pattern,
    latin_edge_pattern,
    normalize_text,
    weighted_length,
)
from .constants import (
    _GENERIC_CATEGORY_WORDS,
    _HAS_UPPER_RE,
    _MACRO_SUFFIX,
    _QUALIFIED_MARKERS,
    _SINGLE_TOKEN_RE,
    _SNAKE_OR_DIGIT_RE,
)
from .types import CorpusSnapshot, ScriptClass, SkillModule, Specificity, TriggerKeyword

logger = logging.getLogger(__name__)


def classify_specificity(raw: str) -> Specificity:
    """Specificity class from the keyword's declared shape."""
    text = raw.strip()
    if not text or contains_cjk(text):
        return Specificity.GENERIC
    if normalize_text(text) in _GENERIC_CATEGORY_WORDS:
        return Specificity.GENERIC
    if any(marker in text for marker in _QUALIFIED_MARKERS) or (text.endswith(_MACRO_SUFFIX) and len(text) > 1):
        return Specificity.QUALIFIED_SYMBOL
    if _SINGLE_TOKEN_RE.match(text) and (_HAS_UPPER_RE.search(text) or _SNAKE_OR_DIGIT_RE.match(text)):
        return Specificity.IDENTIFIER
    return Specificity.GENERIC


def keyword_weight(normalized: str, specificity: Specificity, weights: IndexWeights) -> float:
    base = {
        Specificity.QUALIFIED_SYMBOL: weights.qualified_symbol,
        Specificity.IDENTIFIER: weights.identifier,
        Specificity.GENERIC: weights.generic,
    }[specificity]
    bonus = min(weighted_length(normalized), weights.length_cap) / weights.length_cap
    return round(base + bonus, 4)


def make_trigger_keyword(raw: str, weights: IndexWeights | None = None) -> TriggerKeyword:
    weights = weights or IndexWeights()
    normalized = normalize_text(raw)
    specificity = classify_specificity(raw)
    return TriggerKeyword(
        raw=raw,
        normalized=normalized,
        script=ScriptClass.CJK if contains_cjk(normalized) else ScriptClass.LATIN,
        specificity=specificity,
        weight=keyword_weight(normalized, specificity, weights),
    )


@dataclass(frozen=True)
class IndexEntry:
    module_id: str
    keyword: TriggerKeyword
    position: int  # declaration position inside the module


@dataclass(frozen=True)
class IndexedKeyword:
    """One distinct normalized keyword with its precompiled matching strategy."""

    normalized: str
    script: ScriptClass
    pure_cjk: bool
    pattern: re.Pattern[str] | None  # None for pure CJK keywords
    entries: tuple[IndexEntry, ...]


class TriggerIndex:
    """Read-only keyword -> module mapping; safe to share between threads."""

    def __init__(self, keywords: Mapping[str, IndexedKeyword], module_ids: Iterable[str]) -> None:
        self._keywords = MappingProxyType(dict(keywords))
        self._module_ids = tuple(module_ids)

    def __len__(self) -> int:
        return len(self._keywords)

    def __contains__(self, normalized: object) -> bool:
        return normalized in self._keywords

    @property
    def keywords(self) -> Mapping[str, IndexedKeyword]:
        return self._keywords

    @property
    def module_ids(self) -> tuple[str, ...]:
        return self._module_ids

    def lookup(self, keyword: str) -> tuple[IndexEntry, ...]:
        """Entries for a keyword (normalized on the way in); empty when unknown."""
        item = self._keywords.get(normalize_text(keyword))
        return item.entries if item is not None else ()

    def modules_for(self, keyword: str) -> list[str]:
        return [e.module_id for e in self.lookup(keyword)]

    def keywords_of(self, module_id: str) -> list[TriggerKeyword]:
        out: list[tuple[int, TriggerKeyword]] = []
        for item in self._keywords.values():
            for e in item.entries:
                if e.module_id == module_id:
                    out.append((e.position, e.keyword))
        return [kw for _, kw in sorted(out, key=lambda t: t[0])]

    def to_dict(self) -> dict[str, Any]:
        return {
            "modules": list(self._module_ids),
            "keywords": {
                norm: [
                    {
                        "module_id": e.module_id,
                        "raw": e.keyword.raw,
                        "script": e.keyword.script.value,
                        "specificity": e.keyword.specificity.value,
                        "weight": e.keyword.weight,
                        "position": e.position,
                    }
                    for e in item.entries
                ]
                for norm, item in self._keywords.items()
            },
        }

    def fingerprint(self) -> str:
        """SHA-256 over the canonical serialization, insertion order included."""
        payload = json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def stats(self) -> dict[str, int]:
        return {
            "modules": len(self._module_ids),
            "keywords": len(self._keywords),
            "entries": sum(len(item.entries) for item in self._keywords.values()),
            "shared_keywords": sum(1 for item in self._keywords.values() if len(item.entries) > 1),
        }


def _module_keywords(module: SkillModule, settings: IndexSettings) -> list[str]:
    raw = list(module.triggers)
    if settings.include_module_names:
        for extra in (module.id, module.name):
            if extra not in raw:
                raw.append(extra)
    return raw


def build_index(corpus: CorpusSnapshot, settings: IndexSettings | None = None) -> TriggerIndex:
    """Build the inverted index from a corpus snapshot.

    - same normalized keyword twice in one module: the first declaration wins
    - same keyword in several modules: one entry per module, in load order
    - Latin keywords shorter than ``min_latin_keyword_length`` are dropped
    """
    settings = settings or IndexSettings()
    staged: dict[str, list[IndexEntry]] = {}

    for module in corpus.modules:
        seen: set[str] = set()
        for position, raw in enumerate(_module_keywords(module, settings)):
            kw = make_trigger_keyword(raw, settings.weights)
            if not kw.normalized or kw.normalized in seen:
                continue
            if kw.script is ScriptClass.LATIN and len(kw.normalized) < settings.min_latin_keyword_length:
                logger.debug("Dropping short trigger %r of module %s", raw, module.id)
                continue
            seen.add(kw.normalized)
            staged.setdefault(kw.normalized, []).append(
                IndexEntry(module_id=module.id, keyword=kw, position=position)
            )

    keywords: dict[str, IndexedKeyword] = {}
    for normalized, entries in staged.items():
        script = entries[0].keyword.script
        pure_cjk = script is ScriptClass.CJK and is_pure_cjk(normalized)
        if script is ScriptClass.LATIN:
            pattern = latin_boundary_pattern(normalized)
        elif pure_cjk:
            pattern = None
        else:
            pattern = latin_edge_pattern(normalized)
        keywords[normalized] = IndexedKeyword(
            normalized=normalized,
            script=script,
            pure_cjk=pure_cjk,
            pattern=pattern,
            entries=tuple(entries),
        )

    index = TriggerIndex(keywords, corpus.module_ids())
    if not keywords:
        logger.warning("Trigger index is empty; every query resolves to the root module")
    logger.debug("Built trigger index: %s", index.stats())
    return index
