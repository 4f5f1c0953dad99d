from patchlib.cli import main
from patchlib.database import PatchLibraryDB


def _run(db_path, *argv):
    return main(["--db", str(db_path), *argv])


def test_cli_import_list_and_info(make_library, tmp_path, capsys):
    db_path = tmp_path / "cli.db"
    tree = make_library()

    assert _run(db_path, "validate", str(tree.root)) == 0
    assert _run(db_path, "import", str(tree.root)) == 0
    out = capsys.readouterr().out
    assert "IMPORT COMPLETE" in out
    assert "Patches: 256" in out

    assert _run(db_path, "list") == 0
    assert "Factory" in capsys.readouterr().out

    assert _run(db_path, "info") == 0
    assert "Libraries: 1" in capsys.readouterr().out


def test_cli_import_failure_exit_code(make_library, tmp_path, capsys):
    db_path = tmp_path / "cli.db"
    tree = make_library()
    assert _run(db_path, "import", str(tree.root)) == 0

    assert _run(db_path, "import", str(tree.root)) == 1
    assert "Library already exists" in capsys.readouterr().err


def test_cli_favorite_tag_export_delete(make_library, tmp_path, capsys):
    db_path = tmp_path / "cli.db"
    assert _run(db_path, "import", str(make_library().root)) == 0

    with PatchLibraryDB(str(db_path)) as db:
        library = db.get_all_libraries()[0]
        bank = db.find_banks_by_library(library.id, kind="patch")[0]
        patch = db.find_patches_by_bank(bank.id)[0]

    assert _run(db_path, "favorite", str(patch.id)) == 0
    assert _run(db_path, "tag", str(patch.id), "dark", "mono") == 0
    assert _run(db_path, "patches", str(library.id), str(bank.id)) == 0
    out = capsys.readouterr().out
    assert "favorite" in out
    assert "tags=dark, mono" in out

    assert _run(db_path, "export", str(library.id), str(tmp_path / "out")) == 0
    assert (tmp_path / "out" / "Factory" / "library" / "bank16" / "patch16").is_dir()

    assert _run(db_path, "delete", str(library.id)) == 0
    assert _run(db_path, "delete", str(library.id)) == 1


def test_cli_validate_reports_errors(make_library, tmp_path, capsys):
    tree = make_library()
    tree.sequence_file(2, 2).unlink()
    assert _run(tmp_path / "cli.db", "validate", str(tree.root)) == 1
    assert "is missing its .mmseq file" in capsys.readouterr().out


def test_cli_unknown_patch(tmp_path, capsys):
    assert _run(tmp_path / "cli.db", "favorite", "7") == 1
    assert "Patch with ID 7 not found" in capsys.readouterr().err
