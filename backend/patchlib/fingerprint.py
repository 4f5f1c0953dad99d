"""
Content fingerprints (SHA-256) used as identity keys for libraries,
banks, patches and sequences.
"""

import hashlib
import logging
from pathlib import Path
from typing import List, Union

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)


def fingerprint(data: Union[bytes, str]) -> str:
    """Hex SHA-256 digest of raw bytes (text is encoded as UTF-8)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def default_patch_fingerprint(bank_id: int, patch_number: int) -> str:
    """Fingerprint for a slot that has no .mmp file."""
    return fingerprint(f"{bank_id}-{patch_number}")


async def list_files(directory: Path) -> List[Path]:
    """All files below ``directory``, sorted by their relative POSIX path."""
    directory = Path(directory)
    files: List[Path] = []
    pending = [directory]
    while pending:
        current = pending.pop()
        for entry in await aiofiles.os.listdir(current):
            path = current / entry
            if await aiofiles.os.path.isdir(path):
                pending.append(path)
            else:
                files.append(path)
    return sorted(files, key=lambda p: p.relative_to(directory).as_posix())


async def fingerprint_directory(directory: Path) -> str:
    """
    Digest the concatenated contents of every file under ``directory``.

    Files are visited in lexicographic path order so the result does not
    depend on filesystem enumeration order. All files are read before the
    digest is produced; an unreadable file raises OSError.
    """
    contents = []
    for path in await list_files(directory):
        async with aiofiles.open(path, "rb") as f:
            contents.append(await f.read())

    digest = hashlib.sha256()
    for chunk in contents:
        digest.update(chunk)
    logger.debug(f"Fingerprinted {len(contents)} files under {directory}")
    return digest.hexdigest()
