"""Pytest configuration and shared fixtures for tests."""

from __future__ import annotations

import threading
import time
from collections import Counter
from pathlib import Path
from typing import Any, Mapping

import pytest
import yaml

from skill_router.common.config_loader import clear_config_cache
from skill_router.common.metadata_schema import SkillDescriptor
from skill_router.engine.document_store import InMemoryDocumentStore
from skill_router.engine.reference_loader import reset_document_cache
from skill_router.services.lookup import clear_router_cache

SAMPLE_CORPUS = Path(__file__).resolve().parent.parent / "data" / "sample_corpus"

_ENV_KEYS = (
    "SKILL_ROUTER_CONFIG",
    "SKILL_ROUTER_CORPUS_ROOT",
    "SKILL_ROUTER_MANIFEST",
    "SKILL_ROUTER_ROOT_MODULE",
    "SKILL_ROUTER_MAX_MODULES",
    "SKILL_ROUTER_MAX_TOTAL_BYTES",
    "SKILL_ROUTER_MAX_WORKERS",
    "SKILL_ROUTER_INCLUDE_ROOT_DOCUMENTS",
)


class CountingStore(InMemoryDocumentStore):
    """In-memory store that counts reads, optionally slow or failing per path."""

    def __init__(
        self,
        documents: Mapping[str, str],
        *,
        delay: float = 0.0,
        broken: set[str] | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        super().__init__(documents)
        self.reads: Counter[str] = Counter()
        self.read_started = threading.Event()
        self._lock = threading.Lock()
        self.delay = delay
        self.broken = set(broken or ())
        self.gate = gate

    def read(self, path: str) -> str:
        with self._lock:
            self.reads[path] += 1
        self.read_started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.delay:
            time.sleep(self.delay)
        if path in self.broken:
            raise OSError(f"simulated read failure: {path}")
        return super().read(path)


def write_skill(
    root: Path,
    rel_dir: str,
    frontmatter: Mapping[str, Any],
    docs: Mapping[str, str] | None = None,
    body: str = "",
) -> Path:
    """Write <root>/<rel_dir>/SKILL.md plus module-relative documents."""
    module_dir = root if rel_dir in ("", ".") else root / rel_dir
    module_dir.mkdir(parents=True, exist_ok=True)
    header = yaml.safe_dump(dict(frontmatter), allow_unicode=True, sort_keys=False)
    (module_dir / "SKILL.md").write_text(f"---\n{header}---\n{body}", encoding="utf-8")
    for rel, content in (docs or {}).items():
        p = module_dir / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    return module_dir


def descriptor(name: str, triggers=(), references=(), parent: str | None = None, **extra: Any) -> SkillDescriptor:
    return SkillDescriptor(name=name, triggers=list(triggers), references=list(references), parent=parent, **extra)


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch):
    """Fresh document cache, settings and router caches; no stray env overrides."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_document_cache()
    clear_config_cache()
    clear_router_cache()
    yield
    reset_document_cache()
    clear_config_cache()
    clear_router_cache()


@pytest.fixture
def sample_corpus_root() -> Path:
    return SAMPLE_CORPUS


@pytest.fixture
def make_skill():
    return write_skill


@pytest.fixture
def make_descriptor():
    return descriptor


@pytest.fixture
def counting_store():
    return CountingStore
