"""Result assembler: resolved modules -> bounded response.

Documents are planned against the byte budget using their declared sizes,
walking modules in resolved order and documents in declaration order. The
first document that would push the total over the budget stops the walk:
it and every later document are omitted whole. No document is ever cut.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from .reference_loader import ReferenceLoader
from .types import (
    CorpusSnapshot,
    DocumentLoadError,
    KeywordMatch,
    LoadedDocument,
    MatchReason,
    ReferenceDocument,
    ResolvedModule,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssemblerConfig:
    max_total_bytes: int = 200_000
    include_root_documents: bool = True  # when the root is only supplementary context


@dataclass(frozen=True)
class ModuleRecord:
    module_id: str
    name: str
    description: str
    reason: MatchReason
    score: float
    matched_keywords: tuple[KeywordMatch, ...]
    documents: tuple[LoadedDocument, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "module_id": self.module_id,
            "name": self.name,
            "description": self.description,
            "reason": self.reason.value,
            "score": self.score,
            "matched_keywords": [m.to_dict() for m in self.matched_keywords],
            "documents": [{"path": d.path, "content": d.content} for d in self.documents],
        }


@dataclass(frozen=True)
class LookupResult:
    query: str
    modules: tuple[ModuleRecord, ...]
    errors: tuple[DocumentLoadError, ...] = ()
    omitted: tuple[str, ...] = ()
    total_bytes: int = 0
    budget_bytes: int = 0
    fallback: bool = False
    debug: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def module_ids(self) -> list[str]:
        return [m.module_id for m in self.modules]

    @property
    def documents(self) -> list[LoadedDocument]:
        return [d for m in self.modules for d in m.documents]

    def explain(self) -> list[str]:
        """One line per module naming the keywords that drove the match."""
        lines = []
        for m in self.modules:
            if m.matched_keywords:
                kws = ", ".join(f"{k.keyword} ({k.specificity.value}, {k.weight})" for k in m.matched_keywords)
            else:
                kws = "-"
            lines.append(f"{m.module_id} [{m.reason.value}, score={m.score}]: {kws}")
        return lines

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "fallback": self.fallback,
            "modules": [m.to_dict() for m in self.modules],
            "errors": [{"path": e.path, "reason": e.reason} for e in self.errors],
            "omitted": list(self.omitted),
            "total_bytes": self.total_bytes,
            "budget_bytes": self.budget_bytes,
        }


def plan_documents(
    resolved: Sequence[ResolvedModule],
    corpus: CorpusSnapshot,
    config: AssemblerConfig,
) -> tuple[list[ReferenceDocument], list[str], int]:
    """Pick whole documents in order until the budget would be exceeded.

    Returns (selected documents, omitted paths, planned bytes).
    """
    selected: list[ReferenceDocument] = []
    omitted: list[str] = []
    total = 0
    exhausted = False
    for r in resolved:
        if r.reason is MatchReason.CONTEXT and not config.include_root_documents:
            continue
        for doc in corpus.documents_of(r.module_id):
            if not exhausted and total + doc.byte_size <= config.max_total_bytes:
                selected.append(doc)
                total += doc.byte_size
                continue
            exhausted = True
            omitted.append(doc.path)
    return selected, omitted, total


def assemble_result(
    query: str,
    resolved: Sequence[ResolvedModule],
    corpus: CorpusSnapshot,
    loader: ReferenceLoader,
    config: AssemblerConfig | None = None,
) -> LookupResult:
    config = config or AssemblerConfig()
    selected, omitted, planned = plan_documents(resolved, corpus, config)
    if omitted:
        logger.info(
            "Byte budget %d reached; omitting %d documents: %s", config.max_total_bytes, len(omitted), omitted
        )

    loaded: dict[str, LoadedDocument] = {}
    errors: list[DocumentLoadError] = []
    for outcome in loader.load_many(selected):
        if isinstance(outcome, DocumentLoadError):
            errors.append(outcome)
        else:
            loaded[outcome.path] = outcome

    records: list[ModuleRecord] = []
    total = 0
    for r in resolved:
        module = corpus.module(r.module_id)
        docs = tuple(loaded[p] for p in module.reference_paths if p in loaded)
        total += sum(d.byte_size for d in docs)
        records.append(
            ModuleRecord(
                module_id=module.id,
                name=module.name,
                description=module.description,
                reason=r.reason,
                score=r.score,
                matched_keywords=r.matched,
                documents=docs,
            )
        )

    return LookupResult(
        query=query,
        modules=tuple(records),
        errors=tuple(errors),
        omitted=tuple(omitted),
        total_bytes=total,
        budget_bytes=config.max_total_bytes,
        fallback=len(resolved) == 1 and resolved[0].reason is MatchReason.FALLBACK,
        debug={"planned_bytes": planned},
    )
