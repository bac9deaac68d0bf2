"""
Tests for the RecordStore: uniqueness, write-through, search and load recovery.
"""

import itertools
from unittest import mock

import pytest
from rxbook.errors import DuplicateMobile, InvalidRecord, NotFound, PersistenceError
from rxbook.storage import RECORDS_SLOT, SlotStorage
from rxbook.store import RecordStore


def _ids():
    counter = itertools.count(1)
    return lambda: f"id{next(counter)}"


@pytest.fixture
def seeded(storage, draft_factory):
    """A store holding three records with distinct mobile numbers."""
    store = RecordStore(storage, id_factory=_ids())
    store.add(draft_factory(patient_name="John Smith", mobile_number="9999999999"))
    store.add(draft_factory(patient_name="Jane Doe", mobile_number="8888888888"))
    store.add(draft_factory(patient_name="Ravi Kumar", mobile_number="7777777777"))
    return store


def test_add_assigns_id_and_persists(store, storage, draft_factory):
    record_id = store.add(draft_factory())

    assert record_id
    assert len(store) == 1
    assert store.get_by_id(record_id).patient_name == "John Smith"
    # write-through: a fresh adapter sees the record
    assert [r.id for r in SlotStorage(storage.root).load()] == [record_id]


def test_add_duplicate_mobile_leaves_store_unchanged(seeded, draft_factory):
    before = seeded.records
    with pytest.raises(DuplicateMobile) as excinfo:
        seeded.add(draft_factory(patient_name="Someone Else", mobile_number="8888888888"))
    assert excinfo.value.existing_id == "id2"
    assert seeded.records == before


def test_add_rejects_incomplete_draft(store, draft_factory):
    with pytest.raises(InvalidRecord) as excinfo:
        store.add(draft_factory(remarks=""))
    assert "Remarks" in str(excinfo.value)
    assert len(store) == 0


def test_update_keeps_id_position_and_size(seeded, draft_factory):
    seeded.update("id2", draft_factory(patient_name="Jane Roe", mobile_number="8888888888"))

    assert len(seeded) == 3
    assert [r.id for r in seeded.records] == ["id1", "id2", "id3"]
    assert seeded.records[1].patient_name == "Jane Roe"


def test_update_may_change_mobile_to_unused_number(seeded, draft_factory):
    seeded.update("id2", draft_factory(patient_name="Jane Doe", mobile_number="6666666666"))
    assert seeded.get_by_id("id2").mobile_number == "6666666666"


def test_update_to_anothers_mobile_is_rejected(seeded, draft_factory):
    before = seeded.records
    with pytest.raises(DuplicateMobile):
        seeded.update("id2", draft_factory(patient_name="Jane Doe", mobile_number="9999999999"))
    assert seeded.records == before


def test_update_unknown_id_raises_not_found(seeded, draft_factory):
    with pytest.raises(NotFound):
        seeded.update("missing", draft_factory(mobile_number="5555555555"))


def test_delete_removes_exactly_one(seeded):
    seeded.delete("id2")
    assert [r.id for r in seeded.records] == ["id1", "id3"]


def test_delete_unknown_id_raises_not_found(seeded):
    with pytest.raises(NotFound):
        seeded.delete("missing")
    assert len(seeded) == 3


def test_mobile_is_free_again_after_delete(seeded, draft_factory):
    seeded.delete("id1")
    seeded.add(draft_factory(patient_name="New Patient", mobile_number="9999999999"))
    assert len(seeded) == 3


@pytest.mark.parametrize(
    "query, expected",
    [
        ("", ["id1", "id2", "id3"]),
        ("   ", ["id1", "id2", "id3"]),
        ("jane", ["id2"]),
        ("JOHN", ["id1"]),
        (" smith ", ["id1"]),
        ("8888", ["id2"]),
        ("777", ["id3"]),
        ("nobody", []),
    ],
)
def test_search(seeded, query, expected):
    assert [r.id for r in seeded.search(query)] == expected


def test_failed_save_leaves_store_unchanged(seeded, storage, draft_factory):
    before = seeded.records
    with mock.patch.object(storage, "save", side_effect=PersistenceError(RECORDS_SLOT, "disk full")):
        with pytest.raises(PersistenceError):
            seeded.add(draft_factory(mobile_number="1234567890"))
        with pytest.raises(PersistenceError):
            seeded.delete("id1")
    assert seeded.records == before


def test_corrupt_slot_starts_empty_and_keeps_error(storage, draft_factory):
    storage.slot_path(RECORDS_SLOT).write_text("[{broken", encoding="utf-8")

    store = RecordStore(storage)

    assert len(store) == 0
    assert store.load_error is not None
    assert list(storage.root.glob(f"{RECORDS_SLOT}.corrupt-*.json"))
    # the store is usable afterwards
    store.add(draft_factory())
    assert len(RecordStore(storage)) == 1


def test_subscribers_see_each_mutation(store, draft_factory):
    seen = []
    unsubscribe = store.subscribe(lambda snapshot: seen.append(len(snapshot)))

    record_id = store.add(draft_factory())
    store.delete(record_id)
    unsubscribe()
    store.add(draft_factory())

    assert seen == [1, 0]


def test_add_batch_persists_once(store, storage, draft_factory):
    batch = [
        draft_factory(mobile_number="1111111111").with_id("x1"),
        draft_factory(mobile_number="2222222222").with_id("x2"),
    ]
    with mock.patch.object(storage, "save", wraps=storage.save) as save:
        assert store.add_batch(batch) == 2
        assert store.add_batch([]) == 0
    save.assert_called_once()
    assert [r.id for r in store.records] == ["x1", "x2"]


def test_add_rejects_control_characters(store, draft_factory):
    with pytest.raises(InvalidRecord):
        store.add(draft_factory(remarks="line one\x0bline two"))
    assert len(store) == 0
