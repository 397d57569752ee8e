from __future__ import annotations

from pathlib import Path

import pytest

from obsmem.errors import QuerySyntaxError, ValidationError
from obsmem.store import MemoryStore


def test_search_matches_narrative_and_facts(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        in_narrative = store.create("learning", "Pytest fixtures isolate the config path")
        in_facts = store.create("decision", "Testing approach", facts=["use pytest everywhere"])
        store.create("progress", "Wrote the changelog")

        hits = store.search("pytest")

    assert {hit.id for hit in hits} == {in_narrative, in_facts}


def test_search_orders_by_confidence_then_recency(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        low = store.create("learning", "deploy notes", confidence=0.5)
        high_old = store.create("learning", "deploy checklist", confidence=0.9)
        high_new = store.create("learning", "deploy rollback", confidence=0.9)

        hits = store.search("deploy")

    assert [hit.id for hit in hits] == [high_new, high_old, low]
    assert hits[0].to_dict().keys() == {"id", "type", "narrative", "confidence", "created_at"}


def test_search_respects_limit_and_type_filter(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        for n in range(5):
            store.create("learning", f"cache warmup {n}")
        blocker = store.create("blocker", "cache eviction storm")

        limited = store.search("cache", limit=2)
        blockers = store.search("cache", type="blocker")
        with pytest.raises(ValidationError):
            store.search("cache", type="rumor")

    assert len(limited) == 2
    assert [hit.id for hit in blockers] == [blocker]


def test_search_supports_fts_operators(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        migration = store.create("decision", "Schema migrations run on open")
        store.create("decision", "Migrate nothing else")

        prefix = store.search("migrat*")
        phrase = store.search('"run on open"')

    assert migration in {hit.id for hit in prefix}
    assert [hit.id for hit in phrase] == [migration]


def test_search_empty_query_returns_nothing(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        store.create("learning", "anything")
        assert store.search("") == []
        assert store.search("   ") == []


@pytest.mark.parametrize("query", ['"unterminated', "AND", "title: nope"])
def test_search_malformed_query_raises(tmp_path: Path, query: str) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        store.create("learning", "some text")
        with pytest.raises(QuerySyntaxError):
            store.search(query)


def test_deleted_rows_leave_the_index(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        obs_id = store.create("learning", "ephemeral insight")
        assert [hit.id for hit in store.search("ephemeral")] == [obs_id]

        store.archive(older_than_days=0)

        assert store.search("ephemeral") == []


def test_updates_keep_a_single_index_entry(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        obs_id = store.create("blocker", "Flaky integration suite")
        store.link_bead(obs_id, "bd-3")
        store.link_concept(obs_id, "ci")

        hits = store.search("flaky")

    assert [hit.id for hit in hits] == [obs_id]


def test_rebuild_index_keeps_results(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        obs_id = store.create("learning", "rebuild survives")
        store.rebuild_search_index()
        assert [hit.id for hit in store.search("survives")] == [obs_id]


@pytest.mark.parametrize("query", ["busy: x", "locked: x", "disk: x"])
def test_unknown_column_named_like_storage_error_is_a_syntax_error(
    tmp_path: Path, query: str
) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        store.create("learning", "x marks the spot")
        with pytest.raises(QuerySyntaxError):
            store.search(query)
