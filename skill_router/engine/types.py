from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from ..common.metadata_schema import CorpusIntegrityWarning

__all__ = [
    "CorpusIntegrityWarning",
    "CorpusSnapshot",
    "DocumentLoadError",
    "KeywordMatch",
    "LoadedDocument",
    "MatchReason",
    "MatchResult",
    "Query",
    "ReferenceDocument",
    "ResolvedModule",
    "ScriptClass",
    "SkillModule",
    "SkillRouterError",
    "Specificity",
    "TriggerKeyword",
    "UnknownDocumentError",
]


class ScriptClass(str, Enum):
    LATIN = "latin"
    CJK = "cjk"


class Specificity(str, Enum):
    QUALIFIED_SYMBOL = "qualified_symbol"
    IDENTIFIER = "identifier"
    GENERIC = "generic"

    @property
    def is_symbol(self) -> bool:
        return self is not Specificity.GENERIC


class MatchReason(str, Enum):
    MATCH = "match"
    CONTEXT = "context"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class TriggerKeyword:
    raw: str
    normalized: str
    script: ScriptClass
    specificity: Specificity
    weight: float


@dataclass(frozen=True)
class ReferenceDocument:
    path: str  # relative to the corpus root, posix separators
    module_id: str
    byte_size: int


@dataclass(frozen=True)
class LoadedDocument:
    path: str
    module_id: str
    content: str

    @property
    def byte_size(self) -> int:
        return len(self.content.encode("utf-8"))


@dataclass(frozen=True)
class SkillModule:
    id: str
    name: str
    description: str
    triggers: tuple[str, ...]  # as declared; weighted by the trigger index
    reference_paths: tuple[str, ...]
    parent_id: str | None = None
    source: str | None = None
    order: int = 0

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass(frozen=True)
class CorpusSnapshot:
    """Immutable output of the metadata loader."""

    modules: tuple[SkillModule, ...]
    root_id: str
    documents: Mapping[str, ReferenceDocument]
    warnings: tuple[CorpusIntegrityWarning, ...] = ()
    _by_id: Mapping[str, SkillModule] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "documents", MappingProxyType(dict(self.documents)))
        object.__setattr__(self, "_by_id", MappingProxyType({m.id: m for m in self.modules}))

    @property
    def root(self) -> SkillModule:
        return self._by_id[self.root_id]

    def module(self, module_id: str) -> SkillModule:
        return self._by_id[module_id]

    def has_module(self, module_id: str) -> bool:
        return module_id in self._by_id

    def module_ids(self) -> list[str]:
        return [m.id for m in self.modules]

    def children_of(self, module_id: str) -> list[SkillModule]:
        return [m for m in self.modules if m.parent_id == module_id]

    def ancestors_of(self, module_id: str) -> list[str]:
        """Parent chain, nearest first, ending with the root."""
        out: list[str] = []
        current = self._by_id[module_id].parent_id
        while current is not None:
            out.append(current)
            current = self._by_id[current].parent_id
        return out

    def documents_of(self, module_id: str) -> list[ReferenceDocument]:
        return [self.documents[p] for p in self._by_id[module_id].reference_paths]


@dataclass(frozen=True)
class Query:
    raw: str
    normalized: str
    tokens: tuple[str, ...]
    cjk_spans: tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.normalized


@dataclass(frozen=True)
class KeywordMatch:
    keyword: str  # as declared
    normalized: str
    specificity: Specificity
    weight: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "normalized": self.normalized,
            "specificity": self.specificity.value,
            "weight": self.weight,
        }


@dataclass(frozen=True)
class MatchResult:
    module_id: str
    matched: tuple[KeywordMatch, ...]
    score: float

    @property
    def match_count(self) -> int:
        return len(self.matched)

    @property
    def has_symbol_match(self) -> bool:
        return any(m.specificity.is_symbol for m in self.matched)


@dataclass(frozen=True)
class ResolvedModule:
    module_id: str
    rank: int
    score: float
    matched: tuple[KeywordMatch, ...]
    reason: MatchReason


class SkillRouterError(RuntimeError):
    """Base class for recoverable skill router errors."""


class DocumentLoadError(SkillRouterError):
    """A declared reference document could not be read at request time."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not load reference document '{path}': {reason}")
        self.path = path
        self.reason = reason


class UnknownDocumentError(SkillRouterError):
    """A path was requested that no module declares."""

    def __init__(self, path: str, module_id: str | None = None) -> None:
        owner = f" by module '{module_id}'" if module_id else ""
        super().__init__(f"Reference document '{path}' is not declared{owner}")
        self.path = path
        self.module_id = module_id
