import pytest

from patchlib.database import PatchLibraryDB, resolve_db_path
from patchlib.errors import DuplicateError, NotFoundError


def _library_with_bank(db, fingerprint="lib-1", kind="patch"):
    library = db.create_library("Factory", fingerprint)
    bank = db.create_bank(library.id, 1, "User Bank 01", kind, f"{fingerprint}-bank", b"raw")
    return library, bank


def test_resolve_db_path_prefers_argument_then_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PATCHLIB_DB_PATH", str(tmp_path / "env.db"))
    assert resolve_db_path(str(tmp_path / "arg.db")) == str(tmp_path / "arg.db")
    assert resolve_db_path() == str(tmp_path / "env.db")

    monkeypatch.delenv("PATCHLIB_DB_PATH")
    assert resolve_db_path().endswith("patchlib.db")


def test_connect_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "store.db"
    with PatchLibraryDB(str(path)) as db:
        db.create_schema()
        db.create_library("Factory", "abc")
    assert path.exists()

    with PatchLibraryDB(str(path)) as db:
        assert [lib.name for lib in db.get_all_libraries()] == ["Factory"]


def test_cursor_requires_connection():
    db = PatchLibraryDB(":memory:")
    with pytest.raises(RuntimeError):
        db.get_all_libraries()


def test_library_fingerprint_is_unique(db):
    db.create_library("Factory", "same")
    with pytest.raises(DuplicateError):
        db.create_library("Other", "same")
    assert len(db.get_all_libraries()) == 1


def test_bank_content_round_trips_as_bytes(db):
    library, bank = _library_with_bank(db)
    stored = db.get_bank(bank.id)
    assert stored.content == b"raw"
    assert stored.kind == "patch"
    assert db.find_banks_by_library(library.id, kind="sequence") == []


def test_invalid_bank_kind_rejected(db):
    library = db.create_library("Factory", "abc")
    with pytest.raises(ValueError):
        db.create_bank(library.id, 1, "Bank", "drums", "fp")


def test_patch_favorite_and_tags(db):
    _, bank = _library_with_bank(db)
    patch = db.create_patch(bank.id, 1, "Deep Bass", "p1", "<patch/>", tags=["bass"])

    updated = db.update_patch_favorite(patch.id, True)
    assert updated.favorited is True

    updated = db.update_patch_tags(patch.id, ["dark", " dark ", "mono"])
    assert updated.tags == ["dark", "mono"]
    assert db.get_patch(patch.id).tags == ["dark", "mono"]
    assert db.get_patch(patch.id).favorited is True


def test_update_unknown_patch_raises(db):
    with pytest.raises(NotFoundError):
        db.update_patch_favorite(999, True)
    with pytest.raises(NotFoundError):
        db.update_patch_tags(999, ["x"])


def test_patch_fingerprint_is_unique(db):
    _, bank = _library_with_bank(db)
    db.create_patch(bank.id, 1, "One", "same", "<a/>")
    with pytest.raises(DuplicateError):
        db.create_patch(bank.id, 2, "Two", "same", "<b/>")


def test_shared_sequence_survives_library_delete(db):
    first, first_bank = _library_with_bank(db, "lib-1", kind="sequence")
    second, second_bank = _library_with_bank(db, "lib-2", kind="sequence")

    sequence = db.create_sequence(first_bank.id, 1, "Groove", "s1", "<seq/>")
    db.associate_sequence_with_bank(sequence.id, first_bank.id, 1, "Groove")
    db.associate_sequence_with_bank(sequence.id, second_bank.id, 4, "Groove Copy")
    assert db.count_sequence_references(sequence.id) == 2

    assert db.delete_library(first.id) is True
    remaining = db.find_sequences_by_bank(second_bank.id)
    assert [(s.sequence_number, s.name) for s in remaining] == [(4, "Groove Copy")]
    assert db.find_sequence_by_fingerprint("s1").bank_id == second_bank.id

    assert db.delete_library(second.id) is True
    assert db.find_sequence_by_fingerprint("s1") is None


def test_delete_unknown_library(db):
    assert db.delete_library(42) is False


def test_reset_database_clears_rows(db):
    _library_with_bank(db)
    db.reset_database()
    assert db.get_all_libraries() == []
    db.create_library("Factory", "lib-1")
    assert len(db.get_all_libraries()) == 1


def test_statistics_on_empty_store(db):
    stats = db.get_statistics()
    assert stats == {
        "libraries": 0,
        "banks": {"patch": 0, "sequence": 0},
        "patches": {"total": 0, "default": 0, "favorited": 0},
        "sequences": 0,
        "sequence_slots": 0,
    }
