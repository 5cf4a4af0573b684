"""Corpus descriptor discovery.

Two descriptor sources are supported:
- a skill tree: SKILL.md files whose YAML frontmatter declares the module
- a manifest: one YAML/JSON file with a top-level ``modules`` list

Only descriptor files are read here. Reference document bodies are never opened;
reference paths are returned relative to the corpus root (posix separators).
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from yaml import YAMLError

from .metadata_schema import (
    CorpusIntegrityWarning,
    SkillDescriptor,
    coerce_descriptor,
    describe_validation_error,
)

logger = logging.getLogger(__name__)

DEFAULT_SKILL_FILENAME = "SKILL.md"
DEFAULT_REFERENCES_DIR = "references"

_FRONTMATTER_DELIMITER = "---"
_FRONTMATTER_END = {"---", "..."}


class FrontmatterError(ValueError):
    """Raised when a descriptor file has no parseable frontmatter block."""


@dataclass(frozen=True)
class RegistryLoad:
    descriptors: tuple[SkillDescriptor, ...]
    warnings: tuple[CorpusIntegrityWarning, ...]


def parse_frontmatter(text: str) -> dict[str, Any]:
    """Return the YAML mapping between the leading ``---`` delimiters.

    Raises:
        FrontmatterError: missing/unterminated block, invalid YAML, or a non-mapping.
    """
    lines = (text or "").lstrip("\ufeff").splitlines()
    if not lines or lines[0].strip() != _FRONTMATTER_DELIMITER:
        raise FrontmatterError("missing frontmatter block")

    for end, line in enumerate(lines[1:], start=1):
        if line.strip() in _FRONTMATTER_END:
            break
    else:
        raise FrontmatterError("unterminated frontmatter block")

    block = "\n".join(lines[1:end])
    if "\t" in block:
        block = block.replace("\t", "  ")
    try:
        data = yaml.safe_load(block) or {}
    except YAMLError as err:
        raise FrontmatterError(f"invalid YAML in frontmatter: {err}") from err
    if not isinstance(data, dict):
        raise FrontmatterError("frontmatter must be a mapping")
    return data


def corpus_relative(module_dir: str, ref: str) -> str:
    """Join a module-relative reference onto the module dir, relative to the corpus root.

    Absolute references are returned unchanged; the metadata loader rejects them.
    """
    ref = (ref or "").strip().replace("\\", "/")
    if not ref or posixpath.isabs(ref):
        return ref
    joined = posixpath.normpath(posixpath.join(module_dir or ".", ref))
    return joined


def _iter_skill_files(root: Path, skill_filename: str) -> list[Path]:
    files = [p for p in root.rglob(skill_filename) if p.is_file()]
    # Parents before children, then lexicographic: load order is declaration order.
    files.sort(key=lambda p: (len(p.relative_to(root).parts), p.relative_to(root).as_posix()))
    return files


def _default_references(root: Path, module_dir: Path, references_dir: str) -> list[str]:
    ref_dir = module_dir / references_dir
    if not ref_dir.is_dir():
        return []
    return sorted(p.relative_to(root).as_posix() for p in ref_dir.rglob("*") if p.is_file())


def discover_skill_tree(
    root: Path,
    *,
    skill_filename: str = DEFAULT_SKILL_FILENAME,
    references_dir: str = DEFAULT_REFERENCES_DIR,
) -> RegistryLoad:
    """Discover module descriptors from SKILL.md files under ``root``.

    - parent defaults to the nearest ancestor directory holding a SKILL.md
    - references default to every file under the module's references/ directory
    """
    root = Path(root)
    warnings: list[CorpusIntegrityWarning] = []
    descriptors: list[SkillDescriptor] = []
    if not root.is_dir():
        warnings.append(CorpusIntegrityWarning(None, str(root), "corpus root is not a directory"))
        logger.warning("Corpus root %s is not a directory", root)
        return RegistryLoad(descriptors=(), warnings=tuple(warnings))

    # Directory (relative, posix) -> module id of the descriptor declared there.
    # Unparseable descriptors map to their file path so children become orphans.
    dir_ids: dict[str, str] = {}

    for path in _iter_skill_files(root, skill_filename):
        rel_file = path.relative_to(root).as_posix()
        rel_dir = path.parent.relative_to(root).as_posix()
        try:
            raw = parse_frontmatter(path.read_text(encoding="utf-8"))
            descriptor = coerce_descriptor(raw, source=rel_file)
        except (OSError, UnicodeDecodeError, FrontmatterError) as err:
            dir_ids[rel_dir] = rel_file
            warnings.append(CorpusIntegrityWarning(None, rel_file, f"unreadable descriptor: {err}"))
            logger.warning("Skipping descriptor %s: %s", rel_file, err)
            continue
        except ValidationError as err:
            dir_ids[rel_dir] = rel_file
            reason = describe_validation_error(err)
            warnings.append(CorpusIntegrityWarning(None, rel_file, f"invalid descriptor: {reason}"))
            logger.warning("Skipping descriptor %s: %s", rel_file, reason)
            continue

        updates: dict[str, Any] = {}
        if descriptor.parent is None and rel_dir != ".":
            parent_dir = posixpath.dirname(rel_dir) or "."
            while parent_dir not in dir_ids and parent_dir != ".":
                parent_dir = posixpath.dirname(parent_dir) or "."
            if parent_dir in dir_ids:
                updates["parent"] = dir_ids[parent_dir]

        if descriptor.references:
            updates["references"] = [corpus_relative(rel_dir, r) for r in descriptor.references]
        else:
            updates["references"] = _default_references(root, path.parent, references_dir)

        descriptor = descriptor.model_copy(update=updates)
        dir_ids[rel_dir] = descriptor.module_id
        descriptors.append(descriptor)

    logger.debug("Discovered %d skill descriptors under %s", len(descriptors), root)
    return RegistryLoad(descriptors=tuple(descriptors), warnings=tuple(warnings))


def load_manifest(path: Path) -> RegistryLoad:
    """Load descriptors from a manifest file (YAML or JSON).

    Reference paths in a manifest are already relative to the corpus root.
    A missing or unreadable manifest yields no descriptors and one warning.
    """
    path = Path(path)
    warnings: list[CorpusIntegrityWarning] = []
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, YAMLError) as err:
        logger.warning("Could not read skill manifest %s: %s", path, err)
        return RegistryLoad(
            descriptors=(),
            warnings=(CorpusIntegrityWarning(None, str(path), f"unreadable manifest: {err}"),),
        )

    entries = data.get("modules") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        return RegistryLoad(
            descriptors=(),
            warnings=(CorpusIntegrityWarning(None, str(path), "manifest must contain a 'modules' list"),),
        )

    descriptors: list[SkillDescriptor] = []
    for pos, entry in enumerate(entries):
        source = f"{path.name}#modules[{pos}]"
        if not isinstance(entry, dict):
            warnings.append(CorpusIntegrityWarning(None, source, "manifest entry is not a mapping"))
            continue
        try:
            descriptors.append(coerce_descriptor(entry, source=source))
        except ValidationError as err:
            reason = describe_validation_error(err)
            warnings.append(CorpusIntegrityWarning(None, source, f"invalid descriptor: {reason}"))
            logger.warning("Skipping manifest entry %s: %s", source, reason)

    return RegistryLoad(descriptors=tuple(descriptors), warnings=tuple(warnings))


def load_descriptors(
    root: Path,
    *,
    manifest: Path | None = None,
    skill_filename: str = DEFAULT_SKILL_FILENAME,
    references_dir: str = DEFAULT_REFERENCES_DIR,
) -> RegistryLoad:
    if manifest is not None:
        return load_manifest(manifest)
    return discover_skill_tree(root, skill_filename=skill_filename, references_dir=references_dir)
