from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from obsmem.errors import StorageUnavailable, ValidationError
from obsmem.store import MemoryStore
from obsmem.store.utils import parse_count, parse_id, parse_ids, parse_iso8601


def test_create_and_get_round_trip(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "memory.db")
    try:
        obs_id = store.create(
            "decision",
            "Use WAL journaling for the memory store",
            facts=["readers never block writers", "busy timeout is 5s"],
            confidence=0.8,
            files_read=["obsmem/db.py"],
            files_modified=["obsmem/store/_store.py"],
            concepts=["sqlite", "sqlite", "durability"],
            bead_id="bd-12",
            expires_at="2030-01-01T00:00:00+00:00",
        )
        obs = store.get(obs_id)
    finally:
        store.close()

    assert obs is not None
    assert obs.id == obs_id
    assert obs.type == "decision"
    assert obs.narrative == "Use WAL journaling for the memory store"
    assert obs.facts == ["readers never block writers", "busy timeout is 5s"]
    assert obs.confidence == pytest.approx(0.8)
    assert obs.files_read == ["obsmem/db.py"]
    assert obs.files_modified == ["obsmem/store/_store.py"]
    assert obs.concepts == ["sqlite", "durability"]
    assert obs.bead_id == "bd-12"
    assert obs.expires_at == "2030-01-01T00:00:00+00:00"


def test_create_applies_defaults(tmp_path: Path) -> None:
    before = dt.datetime.now(dt.UTC)
    with MemoryStore(tmp_path / "memory.db") as store:
        obs = store.get(store.create("learning", "Defaults apply"))

    assert obs is not None
    assert obs.facts == []
    assert obs.files_read == []
    assert obs.files_modified == []
    assert obs.concepts == []
    assert obs.confidence == 1.0
    assert obs.bead_id is None
    assert obs.expires_at is None
    created = parse_iso8601(obs.created_at)
    assert created is not None
    assert created >= before.replace(microsecond=0)


def test_create_accepts_empty_narrative_and_zero_confidence(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        obs = store.get(store.create("handoff", "", confidence=0))

    assert obs is not None
    assert obs.narrative == ""
    assert obs.confidence == 0.0


def test_create_rejects_unknown_type(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        with pytest.raises(ValidationError, match="Invalid observation type"):
            store.create("musing", "not a real type")
        assert store.count() == 0


def test_create_normalizes_type_case(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        obs = store.get(store.create(" Blocker ", "Upstream API down"))
    assert obs is not None
    assert obs.type == "blocker"


def test_ids_increase_and_are_never_reused(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        ids = [store.create("progress", f"step {n}") for n in range(3)]
        with store.transaction() as conn:
            conn.execute("DELETE FROM observations WHERE id = ?", (ids[-1],))
        next_id = store.create("progress", "step 4")

    assert ids == sorted(ids)
    assert len(set(ids)) == 3
    assert next_id > ids[-1]


def test_created_at_follows_id_order(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        ids = [store.create("progress", f"step {n}") for n in range(5)]
        stamps = [store.get(obs_id).created_at for obs_id in ids]  # type: ignore[union-attr]
    assert stamps == sorted(stamps)


def test_get_missing_returns_none(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        assert store.get(42) is None


def test_get_many_returns_ascending_ids_and_skips_missing(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        first = store.create("learning", "one")
        second = store.create("learning", "two")
        third = store.create("learning", "three")

        by_string = store.get_many(f"{third}, {first}, 999")
        by_list = store.get_many([second, str(first)])

    assert [obs.id for obs in by_string] == [first, third]
    assert [obs.id for obs in by_list] == [first, second]


def test_parse_ids_accepts_common_shapes() -> None:
    assert parse_ids("3,1, 3") == [3, 1]
    assert parse_ids([2, "5", 2.0]) == [2, 5]
    assert parse_ids(7) == [7]


@pytest.mark.parametrize("value", ["1,abc", "", ",", [True], [1.5], None])
def test_parse_ids_rejects_malformed_input(value: object) -> None:
    with pytest.raises(ValidationError):
        parse_ids(value)  # type: ignore[arg-type]


def test_link_concept_appends_once(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        obs_id = store.create("learning", "FTS5 needs rebuild after bulk import", concepts=["fts"])

        assert store.link_concept(obs_id, "sqlite") is True
        assert store.link_concept(obs_id, "sqlite") is False
        assert store.link_concept(obs_id, "fts") is False
        assert store.link_concept(9999, "sqlite") is False
        obs = store.get(obs_id)

    assert obs is not None
    assert obs.concepts == ["fts", "sqlite"]


def test_link_concept_rejects_blank_concept(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        obs_id = store.create("learning", "blank concept")
        with pytest.raises(ValidationError):
            store.link_concept(obs_id, "  ")


def test_link_bead_is_idempotent(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        obs_id = store.create("blocker", "waiting on review")

        assert store.link_bead(obs_id, "bd-7") == 1
        assert store.link_bead(obs_id, "bd-7") == 1
        assert store.link_bead(obs_id + 100, "bd-7") == 0
        obs = store.get(obs_id)

    assert obs is not None
    assert obs.bead_id == "bd-7"


def test_by_type_and_by_bead_are_newest_first(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        older = store.create("decision", "older", bead_id="bd-1")
        store.create("learning", "unrelated")
        newer = store.create("decision", "newer", bead_id="bd-1")

        decisions = store.by_type("decision")
        limited = store.by_type("decision", limit=1)
        for_bead = store.by_bead("bd-1")

        with pytest.raises(ValidationError):
            store.by_type("nonsense")

    assert [obs.id for obs in decisions] == [newer, older]
    assert [obs.id for obs in limited] == [newer]
    assert [obs.id for obs in for_bead] == [newer, older]


def test_count_by_type(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        store.create("decision", "a")
        store.create("decision", "b")
        store.create("blocker", "c")

        assert store.count() == 3
        assert store.count_by_type() == {"blocker": 1, "decision": 2}


def test_read_memory_file_stays_inside_memory_dir(tmp_path: Path) -> None:
    memory_dir = tmp_path / "memory"
    with MemoryStore(memory_dir / "memory.db") as store:
        (memory_dir / "notes").mkdir()
        (memory_dir / "notes" / "handoff.md").write_text("# Handoff\nship it\n")
        (tmp_path / "secret.txt").write_text("nope")

        assert store.read_memory_file("notes/handoff.md") == "# Handoff\nship it\n"
        assert store.read_memory_file("notes/missing.md") is None
        with pytest.raises(ValidationError):
            store.read_memory_file("../secret.txt")


def test_unusable_directory_raises_storage_unavailable(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")

    with pytest.raises(StorageUnavailable):
        MemoryStore(blocker / "memory.db")


def test_failed_transaction_rolls_back(tmp_path: Path) -> None:
    with MemoryStore(tmp_path / "memory.db") as store:
        store.create("learning", "kept")
        with pytest.raises(RuntimeError):
            with store.transaction() as conn:
                conn.execute("DELETE FROM observations")
                raise RuntimeError("abort")

        assert store.count() == 1
        assert [hit.narrative for hit in store.search("kept")] == ["kept"]


def test_parse_id_and_parse_count_bounds() -> None:
    assert parse_id("12") == 12
    assert parse_count(-4, name="before") == 0
    assert parse_count(2**80, name="limit") == 2**63 - 1
    with pytest.raises(ValidationError):
        parse_id(2**64)
    with pytest.raises(ValidationError):
        parse_count("many", name="after")
