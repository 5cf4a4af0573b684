"""Pydantic schema for skill module descriptors.

A descriptor is what a SKILL.md frontmatter block (or one entry of a manifest)
declares about a module. Validation errors are reported to the caller, which
records them as corpus warnings instead of aborting the load.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class SkillDescriptor(BaseModel):
    """Schema for one module descriptor."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str
    description: str = ""
    triggers: list[str] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)
    parent: str | None = None

    # Set by the registry, not by authors: where the descriptor was read from.
    source: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_not_blank(cls, v: Any) -> str:
        name = "" if v is None else str(v).strip()
        if not name:
            raise ValueError("name cannot be empty")
        return name

    @field_validator("id", "parent", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("description", mode="before")
    @classmethod
    def _description_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return " ".join(str(v).split())

    @field_validator("triggers", "references", mode="before")
    @classmethod
    def ensure_list(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(x) for x in v if x is not None and str(x).strip()]

    @property
    def module_id(self) -> str:
        return self.id or self.name


def coerce_descriptor(raw: dict[str, Any], *, source: str | None = None) -> SkillDescriptor:
    """Validate a raw mapping; `keywords` is accepted as an alias of `triggers`.

    Raises:
        ValidationError: when the mapping does not satisfy the schema.
    """
    data = dict(raw)
    if "triggers" not in data and "keywords" in data:
        data["triggers"] = data.pop("keywords")
    if source is not None:
        data["source"] = source
    return SkillDescriptor.model_validate(data)


def describe_validation_error(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(x) for x in e.get("loc", ())) or "descriptor"
        parts.append(f"{loc}: {e.get('msg')}")
    return "; ".join(parts)


@dataclass(frozen=True)
class CorpusIntegrityWarning:
    """A malformed module or reference declaration, recovered by exclusion."""

    module_id: str | None
    source: str | None
    reason: str

    def __str__(self) -> str:
        who = self.module_id or self.source or "<corpus>"
        return f"{who}: {self.reason}"
