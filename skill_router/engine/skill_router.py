from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from ..common.config_loader import Settings, load_settings
from ..common.metadata_schema import SkillDescriptor
from ..common.skill_registry import load_descriptors
from .document_store import DocumentStore, FileDocumentStore
from .metadata_loader import load_corpus
from .module_resolver import ResolverConfig, resolve_modules
from .query_matcher import match_query, matched_keywords, parse_query
from .reference_loader import DocumentCache, ReferenceLoader
from .result_assembler import AssemblerConfig, LookupResult, assemble_result
from .trigger_index import TriggerIndex, build_index
from .types import CorpusIntegrityWarning, CorpusSnapshot, MatchResult, ResolvedModule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkillRouter:
    """Query -> modules -> reference documents, over one immutable corpus snapshot.

    The index and corpus are read-only after construction, so a router can be
    shared by any number of threads. The only shared mutable state is the
    loader's document cache.
    """

    corpus: CorpusSnapshot
    index: TriggerIndex
    loader: ReferenceLoader
    resolver_config: ResolverConfig = ResolverConfig()
    assembler_config: AssemblerConfig = AssemblerConfig()

    @classmethod
    def from_descriptors(
        cls,
        descriptors: Iterable[SkillDescriptor],
        store: DocumentStore,
        *,
        settings: Settings | None = None,
        warnings: Iterable[CorpusIntegrityWarning] = (),
        cache: DocumentCache | None = None,
    ) -> "SkillRouter":
        settings = settings or Settings()
        corpus = load_corpus(
            descriptors,
            store=store,
            root_module=settings.corpus.root_module,
            require_triggers=settings.corpus.require_triggers,
            warnings=warnings,
        )
        return cls.from_corpus(corpus, store, settings=settings, cache=cache)

    @classmethod
    def from_corpus(
        cls,
        corpus: CorpusSnapshot,
        store: DocumentStore,
        *,
        settings: Settings | None = None,
        cache: DocumentCache | None = None,
    ) -> "SkillRouter":
        settings = settings or Settings()
        return cls(
            corpus=corpus,
            index=build_index(corpus, settings.index),
            loader=ReferenceLoader(corpus, store, cache=cache, max_workers=settings.max_workers),
            resolver_config=ResolverConfig(max_modules=settings.max_modules),
            assembler_config=AssemblerConfig(
                max_total_bytes=settings.max_total_bytes,
                include_root_documents=settings.include_root_documents,
            ),
        )

    @classmethod
    def from_corpus_root(
        cls,
        root: Path | str | None = None,
        *,
        settings: Settings | None = None,
        cache: DocumentCache | None = None,
    ) -> "SkillRouter":
        """Discover SKILL.md descriptors (or read the configured manifest) under ``root``."""
        settings = settings or load_settings()
        corpus_root = Path(root) if root is not None else settings.corpus.root
        registry = load_descriptors(
            corpus_root,
            manifest=settings.corpus.manifest,
            skill_filename=settings.corpus.skill_filename,
            references_dir=settings.corpus.references_dir,
        )
        return cls.from_descriptors(
            registry.descriptors,
            FileDocumentStore(corpus_root),
            settings=settings,
            warnings=registry.warnings,
            cache=cache,
        )

    @property
    def warnings(self) -> tuple[CorpusIntegrityWarning, ...]:
        return self.corpus.warnings

    @property
    def root_id(self) -> str:
        return self.corpus.root_id

    def match(self, query: str | None) -> list[MatchResult]:
        return match_query(query, self.index)

    def resolve(self, query: str | None) -> list[ResolvedModule]:
        return resolve_modules(self.match(query), self.corpus, self.resolver_config)

    def lookup(self, query: str | None) -> LookupResult:
        """Resolve and assemble: modules, their documents, errors, explanation."""
        resolved = self.resolve(query)
        result = assemble_result(query or "", resolved, self.corpus, self.loader, self.assembler_config)
        logger.debug("Lookup %r -> %s", query, result.module_ids)
        return result

    async def alookup(self, query: str | None) -> LookupResult:
        """Async variant; cancelling the caller leaves in-flight loads to finish and fill the cache."""
        return await asyncio.to_thread(self.lookup, query)

    def mentioned_module_ids(self, text: str | None) -> list[str]:
        """Module ids with at least one trigger in ``text``, sorted; the root is included if it matched."""
        found: set[str] = set()
        for kw in matched_keywords(parse_query(text), self.index):
            found.update(e.module_id for e in kw.entries)
        return sorted(found)

    def any_trigger_in(self, text: str | None, *, module_ids: Iterable[str] | None = None) -> bool:
        allowed = set(module_ids) if module_ids is not None else None
        for kw in matched_keywords(parse_query(text), self.index):
            if allowed is None or any(e.module_id in allowed for e in kw.entries):
                return True
        return False
