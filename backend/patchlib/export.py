"""
Library Export Pipeline (export.py)
===================================
Writes a stored library back out in the on-disk format:

    <target>/<library name>/library/bankNN/...
    <target>/<library name>/library/sequences/bankNN/...

Feeding the written tree back into the import pipeline reproduces the same
content. A failed export leaves whatever was already written in place.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import aiofiles.os

from . import layout
from .database import Bank, PatchLibraryDB
from .errors import IntegrityError, PatchLibraryError

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    success: bool
    message: Optional[str] = None
    export_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "export_path": self.export_path,
        }


async def _write_bytes(path: Path, data: bytes) -> None:
    async with aiofiles.open(path, "wb") as f:
        await f.write(data)


class LibraryExporter:
    """Reconstructs library directory trees from a PatchLibraryDB."""

    def __init__(self, db: PatchLibraryDB):
        self.db = db

    async def export_library(self, library_id: int, target_dir) -> ExportResult:
        library = self.db.get_library(library_id)
        if library is None:
            return ExportResult(success=False, message="Library not found")

        export_root = Path(target_dir) / library.name
        library_dir = export_root / layout.LIBRARY_DIR
        logger.info(f"Exporting library '{library.name}' (id={library.id}) to {export_root}")

        try:
            await aiofiles.os.makedirs(library_dir / layout.SEQUENCES_DIR, exist_ok=True)

            banks = self.db.find_banks_by_library(library.id)
            patch_banks = [bank for bank in banks if bank.kind == "patch"]
            sequence_banks = [bank for bank in banks if bank.kind == "sequence"]
            if (
                len(banks) != 2 * layout.BANK_COUNT
                or len(patch_banks) != layout.BANK_COUNT
                or len(sequence_banks) != layout.BANK_COUNT
            ):
                raise IntegrityError("Invalid number of banks found")

            for bank in patch_banks:
                await self._export_patch_bank(bank, library_dir)

            for bank in sequence_banks:
                await self._export_sequence_bank(bank, library_dir / layout.SEQUENCES_DIR)

        except (PatchLibraryError, OSError, sqlite3.Error) as e:
            logger.error(f"Export of library {library.id} failed: {e}")
            return ExportResult(success=False, message=str(e))

        logger.info(f"Exported library '{library.name}' to {export_root}")
        return ExportResult(success=True, export_path=str(export_root))

    async def _export_patch_bank(self, bank: Bank, library_dir: Path) -> None:
        system_name = layout.bank_dir_name(bank.bank_number)
        bank_dir = library_dir / system_name
        await aiofiles.os.makedirs(bank_dir, exist_ok=True)

        if bank.content is None:
            raise IntegrityError(f"Missing bank content for {system_name}")
        await _write_bytes(bank_dir / f"{bank.name}{layout.BANK_EXT}", bank.content)

        patches = self.db.find_patches_by_bank(bank.id)
        if len(patches) != layout.PATCHES_PER_BANK:
            raise IntegrityError(f"Invalid number of patches found in bank {system_name}")

        for patch in patches:
            patch_dir = bank_dir / layout.patch_dir_name(patch.patch_number)
            await aiofiles.os.makedirs(patch_dir, exist_ok=True)
            # default patches stay as an empty slot directory
            if not patch.default_patch and patch.content is not None:
                await _write_bytes(
                    patch_dir / f"{patch.name}{layout.PATCH_EXT}",
                    patch.content.encode("utf-8"),
                )

    async def _export_sequence_bank(self, bank: Bank, sequences_dir: Path) -> None:
        system_name = layout.bank_dir_name(bank.bank_number)
        bank_dir = sequences_dir / system_name
        await aiofiles.os.makedirs(bank_dir, exist_ok=True)

        if bank.content is not None:
            await _write_bytes(bank_dir / f"{bank.name}{layout.BANK_EXT}", bank.content)

        sequences = self.db.find_sequences_by_bank(bank.id)
        if len(sequences) != layout.SEQUENCES_PER_BANK:
            raise IntegrityError(f"Invalid number of sequences found in bank {system_name}")

        for sequence in sequences:
            seq_dir = bank_dir / layout.sequence_dir_name(sequence.sequence_number)
            await aiofiles.os.makedirs(seq_dir, exist_ok=True)
            if sequence.content is None:
                raise IntegrityError(f"Missing sequence content in {seq_dir}")
            await _write_bytes(
                seq_dir / f"{sequence.name}{layout.SEQUENCE_EXT}",
                sequence.content.encode("utf-8"),
            )


async def export_library(library_id: int, target_dir, db: PatchLibraryDB) -> ExportResult:
    """Export library ``library_id`` from ``db`` below ``target_dir``."""
    return await LibraryExporter(db).export_library(library_id, target_dir)
