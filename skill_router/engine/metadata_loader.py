"""Metadata loader: descriptors -> immutable CorpusSnapshot.

Malformed declarations never abort the load. The offending module is excluded
and a CorpusIntegrityWarning is recorded (and logged). Reference documents are
checked for existence and size only; their bodies are never read here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from ..common.metadata_schema import SkillDescriptor
from .document_store import DocumentStore, is_safe_relative
from .types import CorpusIntegrityWarning, CorpusSnapshot, ReferenceDocument, SkillModule

logger = logging.getLogger(__name__)

PLACEHOLDER_ROOT_ID = "root"


@dataclass
class _Candidate:
    descriptor: SkillDescriptor
    module_id: str
    parent_id: str | None
    triggers: tuple[str, ...]
    sizes: dict[str, int]
    order: int


class _WarningLog:
    def __init__(self, initial: Iterable[CorpusIntegrityWarning] = ()) -> None:
        self.items: list[CorpusIntegrityWarning] = list(initial)

    def skip(self, module_id: str | None, source: str | None, reason: str) -> None:
        self.items.append(CorpusIntegrityWarning(module_id, source, reason))
        logger.warning("Skipping module %s (%s): %s", module_id or "<unnamed>", source or "-", reason)


def _dedupe_triggers(triggers: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for t in triggers:
        t = " ".join(str(t).split())
        if not t or t in seen:
            continue
        seen.add(t)
        out.append(t)
    return tuple(out)


def _check_references(
    descriptor: SkillDescriptor, store: DocumentStore
) -> tuple[dict[str, int], str | None]:
    """Return path -> byte size for every declared reference, or the first problem."""
    sizes: dict[str, int] = {}
    for path in descriptor.references:
        if not is_safe_relative(path):
            return {}, f"reference path {path!r} is not inside the corpus root"
        if path in sizes:
            continue
        try:
            sizes[path] = store.size(path)
        except OSError as err:
            return {}, f"reference path {path!r} cannot be resolved: {err}"
    return sizes, None


def _pick_root(candidates: list[_Candidate], root_module: str | None, log: _WarningLog) -> str | None:
    if root_module:
        for c in candidates:
            if c.module_id == root_module:
                c.parent_id = None
                return c.module_id
        log.skip(root_module, None, "configured root module was not declared")
        return None
    for c in candidates:
        if c.parent_id is None:
            return c.module_id
    return None


def _reachable(candidates: list[_Candidate], root_id: str) -> set[str]:
    """Module ids whose parent chain reaches the root through candidates."""
    parent_of = {c.module_id: c.parent_id for c in candidates}
    ok = {root_id}
    changed = True
    while changed:
        changed = False
        for mid, parent in parent_of.items():
            if mid not in ok and parent in ok:
                ok.add(mid)
                changed = True
    return ok


def load_corpus(
    descriptors: Iterable[SkillDescriptor],
    *,
    store: DocumentStore,
    root_module: str | None = None,
    require_triggers: bool = True,
    warnings: Iterable[CorpusIntegrityWarning] = (),
) -> CorpusSnapshot:
    """Validate descriptors and build the corpus snapshot.

    Skipped (with a warning):
    - duplicate module ids (first declaration wins)
    - non-root modules without triggers when ``require_triggers`` is set
    - modules with a reference path outside the corpus root or missing from the store
    - modules whose reference path is already owned by an earlier module
    - extra parentless modules, unknown parents, parent cycles, and their descendants
    """
    log = _WarningLog(warnings)
    candidates: list[_Candidate] = []
    seen_ids: set[str] = set()

    for order, d in enumerate(descriptors):
        mid = d.module_id
        if mid in seen_ids:
            log.skip(mid, d.source, "duplicate module id")
            continue
        seen_ids.add(mid)

        sizes, problem = _check_references(d, store)
        if problem:
            log.skip(mid, d.source, problem)
            continue

        candidates.append(
            _Candidate(
                descriptor=d,
                module_id=mid,
                parent_id=d.parent,
                triggers=_dedupe_triggers(d.triggers),
                sizes=sizes,
                order=order,
            )
        )

    root_id = _pick_root(candidates, root_module, log)
    if root_id is None:
        log.items.append(
            CorpusIntegrityWarning(None, None, f"no root module; using empty placeholder root '{PLACEHOLDER_ROOT_ID}'")
        )
        logger.warning("No root module declared; using empty placeholder root '%s'", PLACEHOLDER_ROOT_ID)

    # Extra roots and trigger-less submodules.
    kept: list[_Candidate] = []
    for c in candidates:
        if c.module_id != root_id and c.parent_id is None:
            log.skip(c.module_id, c.descriptor.source, f"parentless module is not the root ('{root_id}')")
            continue
        if c.module_id != root_id and require_triggers and not c.triggers:
            log.skip(c.module_id, c.descriptor.source, "empty trigger list")
            continue
        kept.append(c)
    candidates = kept

    # Tree reachability and single document ownership, until stable.
    while True:
        reachable = _reachable(candidates, root_id) if root_id is not None else set()
        next_round: list[_Candidate] = []
        for c in candidates:
            if c.module_id in reachable:
                next_round.append(c)
                continue
            if any(o.module_id == c.parent_id for o in candidates):
                reason = f"parent chain through '{c.parent_id}' does not reach the root"
            else:
                reason = f"parent '{c.parent_id}' is not a loaded module"
            log.skip(c.module_id, c.descriptor.source, reason)

        owners: dict[str, str] = {}
        conflicted: set[str] = set()
        for c in next_round:
            clash = next((p for p in c.sizes if p in owners), None)
            if clash is not None:
                log.skip(c.module_id, c.descriptor.source, f"reference {clash!r} is already owned by '{owners[clash]}'")
                conflicted.add(c.module_id)
                continue
            for p in c.sizes:
                owners[p] = c.module_id

        stable = len(next_round) == len(candidates) and not conflicted
        candidates = [c for c in next_round if c.module_id not in conflicted]
        if stable:
            break

    modules: list[SkillModule] = []
    documents: dict[str, ReferenceDocument] = {}
    if root_id is None:
        root_id = PLACEHOLDER_ROOT_ID
        modules.append(
            SkillModule(id=root_id, name=root_id, description="", triggers=(), reference_paths=(), order=-1)
        )

    for c in candidates:
        d = c.descriptor
        modules.append(
            SkillModule(
                id=c.module_id,
                name=d.name,
                description=d.description,
                triggers=c.triggers,
                reference_paths=tuple(c.sizes),
                parent_id=c.parent_id,
                source=d.source,
                order=c.order,
            )
        )
        for path, size in c.sizes.items():
            documents[path] = ReferenceDocument(path=path, module_id=c.module_id, byte_size=size)

    snapshot = CorpusSnapshot(
        modules=tuple(modules),
        root_id=root_id,
        documents=documents,
        warnings=tuple(log.items),
    )
    logger.info(
        "Loaded %d skill modules (%d reference documents, %d warnings), root '%s'",
        len(modules),
        len(documents),
        len(log.items),
        root_id,
    )
    return snapshot
