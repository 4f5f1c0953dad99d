"""
Library Import Pipeline (ingest.py)
===================================
Materializes a library directory tree into the patch library store:
- 1 Library row per imported tree (identified by its content fingerprint)
- 16 patch banks with 16 patches each (missing .mmp files become default patches)
- 16 sequence banks with 16 sequences each (identical sequences are shared)

The import is all-or-nothing from the caller's point of view: structural
problems found before the Library row exists abort without writing anything,
and failures after that point delete the partially built library again.
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os

from . import layout
from .database import Bank, Library, PatchLibraryDB
from .errors import DuplicateError, PatchLibraryError, StructuralError
from .fingerprint import default_patch_fingerprint, fingerprint, fingerprint_directory
from .tags import infer_tags

logger = logging.getLogger(__name__)

DEFAULT_PATCH_NAME = "Default Patch"


@dataclass
class ImportCounts:
    libraries: int = 0
    banks: int = 0
    patches: int = 0
    sequences: int = 0
    reused_sequences: int = 0


@dataclass
class ImportResult:
    success: bool
    message: Optional[str] = None
    library_id: Optional[int] = None
    imported: ImportCounts = field(default_factory=ImportCounts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "library_id": self.library_id,
            "imported": asdict(self.imported),
        }


async def _read_bytes(path: Path) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        return await f.read()


def _decode_text(raw: bytes, path: Path, kind: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise StructuralError(f"{kind} file is not UTF-8 text: {path}") from None


async def _find_files(directory: Path, extension: str) -> List[Path]:
    found = []
    for entry in sorted(await aiofiles.os.listdir(directory)):
        path = directory / entry
        if entry.endswith(extension) and await aiofiles.os.path.isfile(path):
            found.append(path)
    return found


async def _require_directory(path: Path) -> None:
    if not await aiofiles.os.path.isdir(path):
        raise StructuralError(f"Missing required directory: {path}")


class LibraryImporter:
    """
    Imports library trees into a PatchLibraryDB.

    One importer should be shared by everything that imports into the same
    store: it serializes concurrent imports of the same directory.
    """

    def __init__(self, db: PatchLibraryDB):
        self.db = db
        self._locks: Dict[str, asyncio.Lock] = {}
        # imports holding or waiting on each lock
        self._lock_users: Dict[str, int] = {}

    async def import_library(self, root_dir) -> ImportResult:
        """
        Import the library rooted at ``root_dir``.

        ``root_dir`` may be the directory holding ``library/`` or the
        ``library/`` directory itself. Never raises for structural,
        duplicate, database or filesystem problems; they come back as a
        failed result.
        """
        root = Path(root_dir)
        key = str(root.resolve())
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                return await self._import(root)
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _import(self, root: Path) -> ImportResult:
        library_name = root.resolve().name
        logger.info(f"Importing library '{library_name}' from {root}")

        try:
            library_dir = await self._locate_root(root)
            await self._preflight(library_dir)
            library_fingerprint = await fingerprint_directory(library_dir)
            if self.db.find_library_by_fingerprint(library_fingerprint):
                raise DuplicateError("Library already exists")
            library = self.db.create_library(library_name, library_fingerprint)
        except DuplicateError as e:
            # a concurrent import may win the unique constraint race
            logger.warning(f"Import of {root} rejected: {e}")
            return ImportResult(success=False, message="Library already exists")
        except (PatchLibraryError, OSError, sqlite3.Error) as e:
            logger.error(f"Import of {root} failed before any write: {e}")
            return ImportResult(success=False, message=str(e))

        counts = ImportCounts(libraries=1)
        try:
            for bank_number in range(1, layout.BANK_COUNT + 1):
                await self._import_patch_bank(library, library_dir, bank_number, counts)

            sequences_dir = library_dir / layout.SEQUENCES_DIR
            for bank_number in range(1, layout.BANK_COUNT + 1):
                await self._import_sequence_bank(library, sequences_dir, bank_number, counts)

        except (PatchLibraryError, OSError, ValueError, sqlite3.Error) as e:
            logger.error(f"Import of {root} failed, removing library {library.id}: {e}")
            try:
                self.db.delete_library(library.id)
            except sqlite3.Error as cleanup_error:
                logger.error(f"Could not remove partial library {library.id}: {cleanup_error}")
                return ImportResult(
                    success=False,
                    message=f"{e} (partial library {library.id} could not be removed: {cleanup_error})",
                )
            return ImportResult(success=False, message=str(e))

        logger.info(
            f"Imported library '{library_name}' (id={library.id}): "
            f"{counts.banks} banks, {counts.patches} patches, "
            f"{counts.sequences} sequences ({counts.reused_sequences} shared)"
        )
        return ImportResult(
            success=True,
            message=f"Imported library '{library_name}'",
            library_id=library.id,
            imported=counts,
        )

    async def _locate_root(self, root: Path) -> Path:
        nested = root / layout.LIBRARY_DIR
        if await aiofiles.os.path.isdir(nested):
            return nested
        return root

    async def _preflight(self, library_dir: Path) -> None:
        """Check every required directory exists before anything is written."""
        await _require_directory(library_dir)

        for bank_number in range(1, layout.BANK_COUNT + 1):
            bank_dir = library_dir / layout.bank_dir_name(bank_number)
            await _require_directory(bank_dir)
            for patch_number in range(1, layout.PATCHES_PER_BANK + 1):
                await _require_directory(bank_dir / layout.patch_dir_name(patch_number))

        sequences_dir = library_dir / layout.SEQUENCES_DIR
        await _require_directory(sequences_dir)
        for bank_number in range(1, layout.BANK_COUNT + 1):
            seq_bank_dir = sequences_dir / layout.bank_dir_name(bank_number)
            await _require_directory(seq_bank_dir)
            for sequence_number in range(1, layout.SEQUENCES_PER_BANK + 1):
                await _require_directory(seq_bank_dir / layout.sequence_dir_name(sequence_number))

    async def _create_bank(
        self,
        library: Library,
        bank_dir: Path,
        bank_number: int,
        kind: str,
    ) -> Bank:
        bank_files = await _find_files(bank_dir, layout.BANK_EXT)
        if not bank_files:
            raise StructuralError(f"Missing .bank file in directory: {bank_dir}")
        if len(bank_files) > 1:
            raise StructuralError(f"Multiple .bank files in directory: {bank_dir}")

        bank_file = bank_files[0]
        content = await _read_bytes(bank_file)
        bank_fingerprint = await fingerprint_directory(bank_dir)

        return self.db.create_bank(
            library_id=library.id,
            bank_number=bank_number,
            name=bank_file.name[: -len(layout.BANK_EXT)],
            kind=kind,
            fingerprint=bank_fingerprint,
            content=content,
        )

    async def _import_patch_bank(
        self,
        library: Library,
        library_dir: Path,
        bank_number: int,
        counts: ImportCounts,
    ) -> None:
        bank_dir = library_dir / layout.bank_dir_name(bank_number)
        bank = await self._create_bank(library, bank_dir, bank_number, "patch")
        counts.banks += 1

        for patch_number in range(1, layout.PATCHES_PER_BANK + 1):
            patch_dir = bank_dir / layout.patch_dir_name(patch_number)
            mmp_files = await _find_files(patch_dir, layout.PATCH_EXT)

            if mmp_files:
                raw = await _read_bytes(mmp_files[0])
                patch_name = mmp_files[0].name[: -len(layout.PATCH_EXT)]
                self.db.create_patch(
                    bank_id=bank.id,
                    patch_number=patch_number,
                    name=patch_name,
                    fingerprint=fingerprint(raw),
                    content=_decode_text(raw, mmp_files[0], "Patch"),
                    default_patch=False,
                    tags=infer_tags(patch_name, bank.name),
                )
            else:
                self.db.create_patch(
                    bank_id=bank.id,
                    patch_number=patch_number,
                    name=DEFAULT_PATCH_NAME,
                    fingerprint=default_patch_fingerprint(bank.id, patch_number),
                    content=None,
                    default_patch=True,
                )
            counts.patches += 1

    async def _import_sequence_bank(
        self,
        library: Library,
        sequences_dir: Path,
        bank_number: int,
        counts: ImportCounts,
    ) -> None:
        bank_dir_name = layout.bank_dir_name(bank_number)
        bank_dir = sequences_dir / bank_dir_name
        bank = await self._create_bank(library, bank_dir, bank_number, "sequence")
        counts.banks += 1

        for sequence_number in range(1, layout.SEQUENCES_PER_BANK + 1):
            seq_dir_name = layout.sequence_dir_name(sequence_number)
            mmseq_files = await _find_files(bank_dir / seq_dir_name, layout.SEQUENCE_EXT)
            if not mmseq_files:
                raise StructuralError(
                    f"Missing required .mmseq file in sequence directory: "
                    f"{seq_dir_name} in sequence bank {bank_dir_name}"
                )

            raw = await _read_bytes(mmseq_files[0])
            sequence_name = mmseq_files[0].name[: -len(layout.SEQUENCE_EXT)]
            sequence_fingerprint = fingerprint(raw)

            sequence = self.db.find_sequence_by_fingerprint(sequence_fingerprint)
            if sequence:
                counts.reused_sequences += 1
            else:
                sequence = self.db.create_sequence(
                    bank_id=bank.id,
                    sequence_number=sequence_number,
                    name=sequence_name,
                    fingerprint=sequence_fingerprint,
                    content=_decode_text(raw, mmseq_files[0], "Sequence"),
                )
            self.db.associate_sequence_with_bank(
                sequence_id=sequence.id,
                bank_id=bank.id,
                sequence_number=sequence_number,
                name=sequence_name,
            )
            counts.sequences += 1


async def import_library(root_dir, db: PatchLibraryDB) -> ImportResult:
    """
    Import a library directory into ``db``.

    This is the main API function used by the CLI and the HTTP router.
    Callers that may import concurrently should share one LibraryImporter.
    """
    return await LibraryImporter(db).import_library(root_dir)
