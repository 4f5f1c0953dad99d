"""
On-disk layout of a patch library.

    <root>/library/
        bank01..bank16/
            <name>.bank
            patch01..patch16/<name>.mmp
        sequences/
            bank01..bank16/
                <name>.bank
                seq01..seq16/<name>.mmseq
"""

import re
from pathlib import Path
from typing import Optional

LIBRARY_DIR = "library"
SEQUENCES_DIR = "sequences"

BANK_COUNT = 16
PATCHES_PER_BANK = 16
SEQUENCES_PER_BANK = 16

BANK_EXT = ".bank"
PATCH_EXT = ".mmp"
SEQUENCE_EXT = ".mmseq"

BANK_DIR_PATTERN = re.compile(r"^bank(\d{2})$")
PATCH_DIR_PATTERN = re.compile(r"^patch(\d{2})$")
SEQUENCE_DIR_PATTERN = re.compile(r"^seq(\d{2})$")


def pad_number(num: int) -> str:
    return f"{num:02d}"


def bank_dir_name(bank_number: int) -> str:
    return f"bank{pad_number(bank_number)}"


def patch_dir_name(patch_number: int) -> str:
    return f"patch{pad_number(patch_number)}"


def sequence_dir_name(sequence_number: int) -> str:
    return f"seq{pad_number(sequence_number)}"


def slot_number(name: str, pattern: re.Pattern, limit: int) -> Optional[int]:
    """Return the slot number encoded in a directory name, or None if it doesn't match."""
    match = pattern.match(name)
    if not match:
        return None
    number = int(match.group(1))
    if not 1 <= number <= limit:
        return None
    return number


def resolve_library_root(root: Path) -> Path:
    """Use ``<root>/library`` when present, otherwise ``root`` itself."""
    candidate = Path(root) / LIBRARY_DIR
    if candidate.is_dir():
        return candidate
    return Path(root)
