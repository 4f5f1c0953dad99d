from pathlib import Path

import pytest

from patchlib import layout
from patchlib.database import PatchLibraryDB


class LibraryTree:
    """A library directory written below ``root`` for a test."""

    def __init__(self, root: Path):
        self.root = root
        self.library_dir = root / layout.LIBRARY_DIR
        self.sequences_dir = self.library_dir / layout.SEQUENCES_DIR

    def bank_dir(self, bank_number: int) -> Path:
        return self.library_dir / layout.bank_dir_name(bank_number)

    def patch_dir(self, bank_number: int, patch_number: int) -> Path:
        return self.bank_dir(bank_number) / layout.patch_dir_name(patch_number)

    def patch_file(self, bank_number: int, patch_number: int) -> Path:
        return next(self.patch_dir(bank_number, patch_number).glob(f"*{layout.PATCH_EXT}"))

    def sequence_bank_dir(self, bank_number: int) -> Path:
        return self.sequences_dir / layout.bank_dir_name(bank_number)

    def sequence_dir(self, bank_number: int, sequence_number: int) -> Path:
        return self.sequence_bank_dir(bank_number) / layout.sequence_dir_name(sequence_number)

    def sequence_file(self, bank_number: int, sequence_number: int) -> Path:
        return next(self.sequence_dir(bank_number, sequence_number).glob(f"*{layout.SEQUENCE_EXT}"))

    def bank_file(self, bank_dir: Path) -> Path:
        return next(bank_dir.glob(f"*{layout.BANK_EXT}"))


def build_library(root: Path, salt: str = "a", sequence_salt: str = None, defaults=()) -> LibraryTree:
    """
    Write a well-formed library: 16 patch banks of 16 patches and 16
    sequence banks of 16 sequences. Every patch and sequence file has
    distinct content; ``salt`` and ``sequence_salt`` vary it between trees.
    Slots listed in ``defaults`` as (bank, patch) are left without a .mmp file.
    """
    tree = LibraryTree(root)
    sequence_salt = salt if sequence_salt is None else sequence_salt

    for bank_number in range(1, layout.BANK_COUNT + 1):
        bank_dir = tree.bank_dir(bank_number)
        bank_dir.mkdir(parents=True)
        (bank_dir / f"User Bank {bank_number:02d}.bank").write_bytes(
            f"patch bank {bank_number} {salt}".encode("utf-8")
        )
        for patch_number in range(1, layout.PATCHES_PER_BANK + 1):
            patch_dir = tree.patch_dir(bank_number, patch_number)
            patch_dir.mkdir()
            if (bank_number, patch_number) in defaults:
                continue
            (patch_dir / f"Sound {bank_number:02d}-{patch_number:02d}.mmp").write_text(
                f"<patch bank='{bank_number}' slot='{patch_number}' salt='{salt}'/>",
                encoding="utf-8",
            )

    for bank_number in range(1, layout.BANK_COUNT + 1):
        seq_bank_dir = tree.sequence_bank_dir(bank_number)
        seq_bank_dir.mkdir(parents=True)
        (seq_bank_dir / f"Seq Bank {bank_number:02d}.bank").write_bytes(
            f"sequence bank {bank_number} {sequence_salt}".encode("utf-8")
        )
        for sequence_number in range(1, layout.SEQUENCES_PER_BANK + 1):
            seq_dir = tree.sequence_dir(bank_number, sequence_number)
            seq_dir.mkdir()
            (seq_dir / f"Groove {bank_number:02d}-{sequence_number:02d}.mmseq").write_text(
                f"<sequence bank='{bank_number}' slot='{sequence_number}' salt='{sequence_salt}'/>",
                encoding="utf-8",
            )

    return tree


@pytest.fixture
def db():
    store = PatchLibraryDB(":memory:")
    store.connect()
    store.create_schema()
    yield store
    store.close()


@pytest.fixture
def make_library(tmp_path):
    def _make(name: str = "Factory", **kwargs) -> LibraryTree:
        return build_library(tmp_path / name, **kwargs)
    return _make
