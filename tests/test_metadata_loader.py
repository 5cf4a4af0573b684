"""Tests for descriptor validation into a CorpusSnapshot."""

import pytest

from skill_router.engine.document_store import InMemoryDocumentStore
from skill_router.engine.metadata_loader import PLACEHOLDER_ROOT_ID, load_corpus
from skill_router.engine.types import CorpusIntegrityWarning


class _NoReadStore(InMemoryDocumentStore):
    def read(self, path):
        raise AssertionError(f"metadata load must not read {path}")


@pytest.fixture
def store():
    return _NoReadStore(
        {
            "references/overview.md": "# std\n",
            "fs/files.md": "x" * 120,
            "net/tcp.md": "tcp",
            "net/udp.md": "udp",
        }
    )


def _warned(corpus, module_id):
    return [w for w in corpus.warnings if w.module_id == module_id]


class TestLoadCorpus:
    def test_valid_corpus(self, store, make_descriptor):
        corpus = load_corpus(
            [
                make_descriptor("rust-std", ["rust"], ["references/overview.md"]),
                make_descriptor("rust-std-fs", ["std::fs", "File"], ["fs/files.md"], parent="rust-std"),
                make_descriptor("rust-std-net", ["std::net"], ["net/tcp.md", "net/udp.md"], parent="rust-std"),
            ],
            store=store,
        )

        assert corpus.warnings == ()
        assert corpus.root_id == "rust-std"
        assert corpus.module_ids() == ["rust-std", "rust-std-fs", "rust-std-net"]
        assert corpus.module("rust-std-fs").triggers == ("std::fs", "File")
        assert corpus.documents["fs/files.md"].byte_size == 120
        assert corpus.documents["net/udp.md"].module_id == "rust-std-net"
        assert [d.path for d in corpus.documents_of("rust-std-net")] == ["net/tcp.md", "net/udp.md"]
        assert [m.id for m in corpus.children_of("rust-std")] == ["rust-std-fs", "rust-std-net"]
        assert corpus.ancestors_of("rust-std-fs") == ["rust-std"]

    def test_snapshot_is_read_only(self, store, make_descriptor):
        corpus = load_corpus([make_descriptor("root", ["rust"])], store=store)
        with pytest.raises(TypeError):
            corpus.documents["x"] = None  # type: ignore[index]

    def test_trigger_less_submodule_is_skipped(self, store, make_descriptor):
        corpus = load_corpus(
            [
                make_descriptor("root"),
                make_descriptor("fs", [], ["fs/files.md"], parent="root"),
            ],
            store=store,
        )

        # The root may have no triggers; a submodule may not.
        assert corpus.module_ids() == ["root"]
        assert "trigger" in _warned(corpus, "fs")[0].reason
        assert "fs/files.md" not in corpus.documents

    def test_trigger_less_submodule_allowed_when_not_required(self, store, make_descriptor):
        corpus = load_corpus(
            [make_descriptor("root"), make_descriptor("fs", parent="root")],
            store=store,
            require_triggers=False,
        )
        assert corpus.module_ids() == ["root", "fs"]

    def test_missing_reference_skips_only_that_module(self, store, make_descriptor):
        corpus = load_corpus(
            [
                make_descriptor("root", ["rust"]),
                make_descriptor("fs", ["std::fs"], ["fs/files.md", "fs/missing.md"], parent="root"),
                make_descriptor("net", ["std::net"], ["net/tcp.md"], parent="root"),
            ],
            store=store,
        )

        assert corpus.module_ids() == ["root", "net"]
        assert "fs/missing.md" in _warned(corpus, "fs")[0].reason

    @pytest.mark.parametrize("path", ["../secret.md", "/etc/passwd", "fs/../../secret.md", "fs\\files.md"])
    def test_reference_outside_root_is_rejected(self, store, make_descriptor, path):
        corpus = load_corpus(
            [make_descriptor("root", ["rust"]), make_descriptor("fs", ["std::fs"], [path], parent="root")],
            store=store,
        )
        assert corpus.module_ids() == ["root"]
        assert "not inside the corpus root" in _warned(corpus, "fs")[0].reason

    def test_duplicate_id_first_wins(self, store, make_descriptor):
        corpus = load_corpus(
            [
                make_descriptor("root", ["rust"]),
                make_descriptor("fs", ["std::fs"], ["fs/files.md"], parent="root"),
                make_descriptor("fs", ["File"], ["net/tcp.md"], parent="root"),
            ],
            store=store,
        )

        assert corpus.module("fs").triggers == ("std::fs",)
        assert "net/tcp.md" not in corpus.documents
        assert _warned(corpus, "fs")[0].reason == "duplicate module id"

    def test_document_has_a_single_owner(self, store, make_descriptor):
        corpus = load_corpus(
            [
                make_descriptor("root", ["rust"]),
                make_descriptor("net", ["std::net"], ["net/tcp.md"], parent="root"),
                make_descriptor("tcp", ["TcpStream"], ["net/tcp.md", "net/udp.md"], parent="root"),
            ],
            store=store,
        )

        assert corpus.module_ids() == ["root", "net"]
        assert corpus.documents["net/tcp.md"].module_id == "net"
        assert "net/udp.md" not in corpus.documents
        assert "already owned" in _warned(corpus, "tcp")[0].reason

    def test_unknown_parent_skips_module_and_descendants(self, store, make_descriptor):
        corpus = load_corpus(
            [
                make_descriptor("root", ["rust"]),
                make_descriptor("net", ["std::net"], parent="nowhere"),
                make_descriptor("tcp", ["TcpStream"], parent="net"),
                make_descriptor("fs", ["std::fs"], parent="root"),
            ],
            store=store,
        )

        assert corpus.module_ids() == ["root", "fs"]
        assert {w.module_id for w in corpus.warnings} == {"net", "tcp"}

    def test_parent_cycle_is_skipped(self, store, make_descriptor):
        corpus = load_corpus(
            [
                make_descriptor("root", ["rust"]),
                make_descriptor("a", ["Alpha"], parent="b"),
                make_descriptor("b", ["Beta"], parent="a"),
            ],
            store=store,
        )

        assert corpus.module_ids() == ["root"]
        assert {w.module_id for w in corpus.warnings} == {"a", "b"}

    def test_second_parentless_module_is_skipped(self, store, make_descriptor):
        corpus = load_corpus(
            [
                make_descriptor("root", ["rust"]),
                make_descriptor("other-root", ["Other"]),
            ],
            store=store,
        )

        assert corpus.root_id == "root"
        assert corpus.module_ids() == ["root"]
        assert _warned(corpus, "other-root")

    def test_configured_root_module(self, store, make_descriptor):
        corpus = load_corpus(
            [
                make_descriptor("top", ["rust"]),
                make_descriptor("std", ["std"], parent="top"),
                make_descriptor("fs", ["std::fs"], parent="std"),
            ],
            store=store,
            root_module="std",
        )

        assert corpus.root_id == "std"
        assert corpus.root.parent_id is None
        assert corpus.module_ids() == ["std", "fs"]
        assert _warned(corpus, "top")

    def test_missing_root_uses_placeholder(self, store, make_descriptor):
        corpus = load_corpus([make_descriptor("fs", ["std::fs"], parent="absent")], store=store)

        assert corpus.root_id == PLACEHOLDER_ROOT_ID
        assert corpus.module_ids() == [PLACEHOLDER_ROOT_ID]
        assert corpus.root.triggers == ()
        assert any("placeholder" in w.reason for w in corpus.warnings)

    def test_empty_corpus(self, store):
        corpus = load_corpus([], store=store)
        assert corpus.root_id == PLACEHOLDER_ROOT_ID
        assert corpus.documents == {}

    def test_upstream_warnings_are_kept_first(self, store, make_descriptor):
        upstream = CorpusIntegrityWarning(None, "broken/SKILL.md", "unreadable descriptor")
        corpus = load_corpus(
            [make_descriptor("root", ["rust"]), make_descriptor("x", [], parent="root")],
            store=store,
            warnings=[upstream],
        )

        assert corpus.warnings[0] == upstream
        assert len(corpus.warnings) == 2

    def test_duplicate_triggers_collapsed(self, store, make_descriptor):
        corpus = load_corpus(
            [make_descriptor("root", ["rust", "rust", "  standard   library "])],
            store=store,
        )
        assert corpus.root.triggers == ("rust", "standard library")
