"""Tests for deterministic module ranking and root handling."""

import itertools

import pytest

from skill_router.engine.module_resolver import ResolverConfig, rank_matches, resolve_modules
from skill_router.engine.types import (
    CorpusSnapshot,
    KeywordMatch,
    MatchReason,
    MatchResult,
    SkillModule,
    Specificity,
)


def _corpus(*ids):
    modules = [SkillModule(id="root", name="root", description="", triggers=(), reference_paths=())]
    modules += [
        SkillModule(id=i, name=i, description="", triggers=("x",), reference_paths=(), parent_id="root")
        for i in ids
    ]
    return CorpusSnapshot(modules=tuple(modules), root_id="root", documents={})


def _kw(keyword, weight, specificity=Specificity.IDENTIFIER):
    return KeywordMatch(keyword=keyword, normalized=keyword.lower(), specificity=specificity, weight=weight)


def _result(module_id, *matches):
    return MatchResult(module_id=module_id, matched=tuple(matches), score=round(sum(m.weight for m in matches), 6))


@pytest.fixture
def corpus():
    return _corpus("alpha", "beta", "gamma", "delta")


class TestRanking:
    def test_higher_score_wins(self, corpus):
        resolved = resolve_modules(
            [_result("alpha", _kw("a", 4.1)), _result("beta", _kw("std::b", 10.2, Specificity.QUALIFIED_SYMBOL))],
            corpus,
        )
        assert [r.module_id for r in resolved] == ["beta", "alpha", "root"]

    def test_equal_score_more_keywords_wins(self, corpus):
        resolved = resolve_modules(
            [
                _result("alpha", _kw("a", 4.0)),
                _result("beta", _kw("b1", 2.0, Specificity.GENERIC), _kw("b2", 2.0, Specificity.GENERIC)),
            ],
            corpus,
        )
        assert [r.module_id for r in resolved[:2]] == ["beta", "alpha"]

    def test_symbol_match_beats_generic_only(self, corpus):
        resolved = resolve_modules(
            [
                _result("alpha", _kw("generic words", 2.0, Specificity.GENERIC)),
                _result("beta", _kw("Beta", 2.0, Specificity.IDENTIFIER)),
            ],
            corpus,
        )
        assert [r.module_id for r in resolved[:2]] == ["beta", "alpha"]

    def test_full_tie_breaks_by_module_id(self, corpus):
        results = [_result("gamma", _kw("Clone", 4.25)), _result("alpha", _kw("Clone", 4.25))]
        resolved = resolve_modules(results, corpus)
        assert [r.module_id for r in resolved] == ["alpha", "gamma", "root"]

    def test_order_independent_of_input_order(self, corpus):
        results = [
            _result("alpha", _kw("Clone", 4.25)),
            _result("beta", _kw("Clone", 4.25)),
            _result("gamma", _kw("std::x", 10.3, Specificity.QUALIFIED_SYMBOL)),
            _result("delta", _kw("x", 1.05, Specificity.GENERIC)),
        ]
        expected = resolve_modules(results, corpus, ResolverConfig(max_modules=4))
        for perm in itertools.permutations(results):
            assert resolve_modules(list(perm), corpus, ResolverConfig(max_modules=4)) == expected
        assert [r.module_id for r in expected] == ["gamma", "alpha", "beta", "delta", "root"]

    def test_rank_matches_sorts_all_results(self):
        ranked = rank_matches([_result("b", _kw("x", 1.0)), _result("a", _kw("x", 1.0))])
        assert [r.module_id for r in ranked] == ["a", "b"]


class TestRootHandling:
    def test_no_match_falls_back_to_root(self, corpus):
        resolved = resolve_modules([], corpus)

        assert len(resolved) == 1
        assert resolved[0].module_id == "root"
        assert resolved[0].reason is MatchReason.FALLBACK
        assert resolved[0].score == 0.0

    def test_root_only_match_is_fallback(self, corpus):
        resolved = resolve_modules([_result("root", _kw("rust", 1.2, Specificity.GENERIC))], corpus)

        assert [r.module_id for r in resolved] == ["root"]
        assert resolved[0].reason is MatchReason.FALLBACK
        assert resolved[0].score == 1.2

    def test_root_appended_last_as_context(self, corpus):
        resolved = resolve_modules(
            [_result("root", _kw("std", 10.9, Specificity.GENERIC)), _result("alpha", _kw("Alpha", 4.25))],
            corpus,
        )

        assert [r.module_id for r in resolved] == ["alpha", "root"]
        assert [r.reason for r in resolved] == [MatchReason.MATCH, MatchReason.CONTEXT]
        assert [r.rank for r in resolved] == [0, 1]

    def test_max_modules_truncates_before_root(self, corpus):
        results = [_result(i, _kw(i, w)) for i, w in (("alpha", 4.4), ("beta", 4.3), ("gamma", 4.2), ("delta", 4.1))]
        resolved = resolve_modules(results, corpus, ResolverConfig(max_modules=2))

        assert [r.module_id for r in resolved] == ["alpha", "beta", "root"]

    def test_unknown_and_zero_score_modules_ignored(self, corpus):
        resolved = resolve_modules(
            [_result("ghost", _kw("Ghost", 9.0)), MatchResult(module_id="alpha", matched=(), score=0.0)],
            corpus,
        )
        assert [r.module_id for r in resolved] == ["root"]

    def test_root_appears_exactly_once(self, corpus):
        resolved = resolve_modules(
            [_result("root", _kw("rust", 1.2)), _result("beta", _kw("Beta", 4.2))],
            corpus,
            ResolverConfig(max_modules=1),
        )
        assert [r.module_id for r in resolved].count("root") == 1
