"""
Unified configuration loader for the skill router.

This module is the single source of truth for all configuration:
- Settings dataclasses (Settings, CorpusSettings, IndexWeights, ...)
- Loading settings from config/settings.yaml with env var overrides

All code should import configuration from this module, not from settings.yaml directly.
"""

from __future__ import annotations

import functools
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_REPO_ROOT = Path(__file__).resolve().parents[2]
_CONFIG_DIR = _REPO_ROOT / "config"


class ConfigError(ValueError):
    """Raised when settings.yaml (or an env override) holds an invalid value."""


# ─────────────────────────────────────────────────────────────────────────────
# Core Settings Dataclasses
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CorpusSettings:
    """Where the skill corpus lives and how its descriptors are declared."""
    root: Path = Path("data/sample_corpus")
    skill_filename: str = "SKILL.md"
    references_dir: str = "references"
    manifest: Path | None = None         # Use a descriptor manifest instead of SKILL.md discovery
    root_module: str | None = None       # Explicit root id; default is the first parentless module
    require_triggers: bool = True        # Non-root modules without triggers are skipped


@dataclass(frozen=True)
class IndexWeights:
    """Specificity weights for trigger keywords.

    weight = class_base + min(length, length_cap) / length_cap
    (CJK characters count double towards length)
    """
    qualified_symbol: float = 10.0  # std::fs, println!, Vec<T>
    identifier: float = 4.0         # HashMap, read_to_string, u8
    generic: float = 1.0            # collection, error handling, 集合
    length_cap: int = 20


@dataclass(frozen=True)
class IndexSettings:
    weights: IndexWeights = IndexWeights()
    min_latin_keyword_length: int = 2
    include_module_names: bool = False


@dataclass(frozen=True)
class Settings:
    """Application settings - all values loaded from config/settings.yaml.

    Frozen after loading; env vars override YAML values.
    """
    corpus: CorpusSettings = field(default_factory=CorpusSettings)
    index: IndexSettings = field(default_factory=IndexSettings)

    # Resolver
    max_modules: int = 3              # Matched submodules returned before the root

    # Assembler
    max_total_bytes: int = 200_000    # Budget over all emitted document bodies
    include_root_documents: bool = True

    # Reference loader
    max_workers: int = 8


# ─────────────────────────────────────────────────────────────────────────────
# Settings Loading Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _settings_path() -> Path:
    """Settings file. Can be overridden via SKILL_ROUTER_CONFIG for testing."""
    override = os.getenv("SKILL_ROUTER_CONFIG")
    if override:
        return Path(override)
    return _CONFIG_DIR / "settings.yaml"


def _load_settings_yaml() -> dict[str, Any]:
    """Load raw settings from config/settings.yaml."""
    settings_path = _settings_path()
    if not settings_path.exists():
        return {}
    with open(settings_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid format in settings file '{settings_path}': expected a mapping")
    return data


def _env_int(key: str, default: int) -> int:
    val = os.getenv(key)
    return int(val) if val and val.strip() else default


def _env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _env_str(key: str, default: str | None) -> str | None:
    val = os.getenv(key)
    if val is None or val.strip() == "":
        return default
    return val.strip()


def _resolve_path(raw: str | Path, root: Path) -> Path:
    p = Path(raw)
    if not p.is_absolute():
        p = root / p
    return p


def _validate_settings(settings: Settings) -> None:
    """Validate settings values."""
    if settings.max_modules < 1:
        raise ConfigError(f"resolver.max_modules must be >= 1 (got {settings.max_modules})")

    if settings.max_total_bytes < 0:
        raise ConfigError(f"assembler.max_total_bytes must be >= 0 (got {settings.max_total_bytes})")

    if settings.max_workers < 1:
        raise ConfigError(f"loader.max_workers must be >= 1 (got {settings.max_workers})")

    w = settings.index.weights
    if not (w.qualified_symbol > w.identifier > w.generic > 0):
        raise ConfigError(
            "index.weights must satisfy qualified_symbol > identifier > generic > 0 "
            f"(got {w.qualified_symbol}, {w.identifier}, {w.generic})"
        )
    if w.length_cap < 1:
        raise ConfigError(f"index.weights.length_cap must be >= 1 (got {w.length_cap})")

    if settings.index.min_latin_keyword_length < 1:
        raise ConfigError(
            f"index.min_latin_keyword_length must be >= 1 (got {settings.index.min_latin_keyword_length})"
        )

    if not settings.corpus.skill_filename.strip():
        raise ConfigError("corpus.skill_filename must not be empty")


def build_settings(config: dict[str, Any], *, root: Path = _REPO_ROOT) -> Settings:
    """Build validated Settings from a raw config mapping plus env overrides.

    Environment variables override YAML values:
    - SKILL_ROUTER_CORPUS_ROOT, SKILL_ROUTER_MANIFEST, SKILL_ROUTER_ROOT_MODULE
    - SKILL_ROUTER_MAX_MODULES, SKILL_ROUTER_MAX_TOTAL_BYTES, SKILL_ROUTER_MAX_WORKERS
    - SKILL_ROUTER_INCLUDE_ROOT_DOCUMENTS
    """
    corpus_cfg = config.get("corpus") or {}
    index_cfg = config.get("index") or {}
    weights_cfg = index_cfg.get("weights") or {}
    resolver_cfg = config.get("resolver") or {}
    assembler_cfg = config.get("assembler") or {}
    loader_cfg = config.get("loader") or {}

    try:
        corpus_root = _env_str("SKILL_ROUTER_CORPUS_ROOT", corpus_cfg.get("root")) or "data/sample_corpus"
        manifest_raw = _env_str("SKILL_ROUTER_MANIFEST", corpus_cfg.get("manifest"))
        corpus = CorpusSettings(
            root=_resolve_path(corpus_root, root),
            skill_filename=str(corpus_cfg.get("skill_filename", "SKILL.md")),
            references_dir=str(corpus_cfg.get("references_dir", "references")),
            manifest=_resolve_path(manifest_raw, root) if manifest_raw else None,
            root_module=_env_str("SKILL_ROUTER_ROOT_MODULE", corpus_cfg.get("root_module")),
            require_triggers=bool(corpus_cfg.get("require_triggers", True)),
        )

        weights = IndexWeights(
            qualified_symbol=float(weights_cfg.get("qualified_symbol", 10.0)),
            identifier=float(weights_cfg.get("identifier", 4.0)),
            generic=float(weights_cfg.get("generic", 1.0)),
            length_cap=int(weights_cfg.get("length_cap", 20)),
        )
        index = IndexSettings(
            weights=weights,
            min_latin_keyword_length=int(index_cfg.get("min_latin_keyword_length", 2)),
            include_module_names=bool(index_cfg.get("include_module_names", False)),
        )

        settings = Settings(
            corpus=corpus,
            index=index,
            max_modules=_env_int("SKILL_ROUTER_MAX_MODULES", int(resolver_cfg.get("max_modules", 3))),
            max_total_bytes=_env_int(
                "SKILL_ROUTER_MAX_TOTAL_BYTES", int(assembler_cfg.get("max_total_bytes", 200_000))
            ),
            include_root_documents=_env_bool(
                "SKILL_ROUTER_INCLUDE_ROOT_DOCUMENTS", bool(assembler_cfg.get("include_root_documents", True))
            ),
            max_workers=_env_int("SKILL_ROUTER_MAX_WORKERS", int(loader_cfg.get("max_workers", 8))),
        )
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Invalid settings value: {err}") from err

    _validate_settings(settings)
    return settings


@functools.lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load and validate settings from config/settings.yaml (cached).

    Returns:
        Settings: Validated, frozen settings object
    """
    load_dotenv()
    settings = build_settings(_load_settings_yaml())
    logger.debug("Loaded settings: corpus root %s", settings.corpus.root)
    return settings


def get_settings_yaml() -> dict[str, Any]:
    """Get raw settings dict from YAML."""
    return _load_settings_yaml()


def clear_config_cache() -> None:
    """Clear all cached configurations (useful for testing)."""
    load_settings.cache_clear()
