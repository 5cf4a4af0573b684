"""Trigger-keyword routing over a skill/reference-document corpus."""

from .engine.skill_router import SkillRouter
from .services.lookup import build_router, lookup

__all__ = ["SkillRouter", "build_router", "lookup"]
