"""
Structural validation of a library directory.

The validator is read-only: it never touches the database and never
raises. Every problem it finds becomes an entry in ``errors`` (the tree
cannot be imported) or ``warnings`` (informational).
"""

import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import layout

logger = logging.getLogger(__name__)


@dataclass
class ValidationDetails:
    bank_count: int = 0
    patch_count: int = 0
    sequence_count: int = 0
    missing_banks: List[str] = field(default_factory=list)
    missing_patches: List[str] = field(default_factory=list)
    missing_sequences: List[str] = field(default_factory=list)
    invalid_names: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    details: ValidationDetails = field(default_factory=ValidationDetails)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "details": asdict(self.details),
        }


@dataclass
class PatchSlot:
    patch_number: int
    patch_name: Optional[str]
    path: Optional[Path] = None

    @property
    def is_default_patch(self) -> bool:
        return self.patch_name is None


@dataclass
class BankScan:
    bank_number: int
    bank_file_names: List[str] = field(default_factory=list)
    patches: List[PatchSlot] = field(default_factory=list)


@dataclass
class SequenceSlot:
    bank_number: int
    sequence_number: int
    sequence_name: Optional[str]
    path: Optional[Path] = None


@dataclass
class SequenceBankScan:
    bank_number: int
    bank_file_names: List[str] = field(default_factory=list)
    sequences: List[SequenceSlot] = field(default_factory=list)


def _numbered_dirs(parent: Path, pattern, limit: int) -> Dict[int, Path]:
    """Map slot number -> directory for children of ``parent`` matching ``pattern``."""
    found = {}
    for child in sorted(parent.iterdir()):
        if not child.is_dir():
            continue
        number = layout.slot_number(child.name, pattern, limit)
        if number is not None:
            found[number] = child
    return found


def _files_with_ext(directory: Path, extension: str) -> List[Path]:
    return sorted(
        child
        for child in directory.iterdir()
        if child.is_file() and child.name.endswith(extension)
    )


def _stem(path: Path, extension: str) -> str:
    return path.name[: -len(extension)]


def _file_stems(directory: Path, extension: str) -> List[str]:
    return [_stem(path, extension) for path in _files_with_ext(directory, extension)]


def is_valid_bank_file_name(name: str) -> bool:
    return len(name) > 0 and "/" not in name and "\\" not in name


def is_utf8_text(path: Path) -> bool:
    try:
        path.read_bytes().decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


class LibraryValidator:
    """Checks a candidate library directory against the on-disk format."""

    def validate_library(self, library_path) -> ValidationResult:
        result = ValidationResult()
        library_path = Path(library_path)

        try:
            if not library_path.exists():
                result.errors.append(f"Library directory does not exist: {library_path}")
                return result

            root = layout.resolve_library_root(library_path)
            self._check_banks(root, result)
            self._check_sequences(root, result)

        except Exception as e:
            # anything unexpected during enumeration is reported, never raised
            logger.warning(f"Validation of {library_path} aborted: {e}")
            result.errors.append(f"Error validating library: {e}")

        logger.info(
            f"Validated {library_path}: valid={result.is_valid} "
            f"errors={len(result.errors)} warnings={len(result.warnings)}"
        )
        return result

    def scan_banks(self, root: Path) -> List[BankScan]:
        banks = []
        for bank_number, bank_path in sorted(
            _numbered_dirs(root, layout.BANK_DIR_PATTERN, layout.BANK_COUNT).items()
        ):
            scan = BankScan(
                bank_number=bank_number,
                bank_file_names=_file_stems(bank_path, layout.BANK_EXT),
            )
            for patch_number, patch_path in sorted(
                _numbered_dirs(bank_path, layout.PATCH_DIR_PATTERN, layout.PATCHES_PER_BANK).items()
            ):
                mmp_files = _files_with_ext(patch_path, layout.PATCH_EXT)
                if mmp_files:
                    slot = PatchSlot(
                        patch_number=patch_number,
                        patch_name=_stem(mmp_files[0], layout.PATCH_EXT),
                        path=mmp_files[0],
                    )
                else:
                    slot = PatchSlot(patch_number=patch_number, patch_name=None)
                scan.patches.append(slot)
            banks.append(scan)
        return banks

    def scan_sequences(self, root: Path, result: ValidationResult) -> List[SequenceBankScan]:
        banks: List[SequenceBankScan] = []
        sequences_path = root / layout.SEQUENCES_DIR
        if not sequences_path.is_dir():
            result.warnings.append(f"Library has no {layout.SEQUENCES_DIR}/ directory")
            return banks

        seq_banks = _numbered_dirs(sequences_path, layout.BANK_DIR_PATTERN, layout.BANK_COUNT)
        missing = [
            layout.bank_dir_name(n) for n in range(1, layout.BANK_COUNT + 1) if n not in seq_banks
        ]
        if missing:
            result.warnings.append(f"Missing sequence banks: {', '.join(missing)}")

        for bank_number, bank_path in sorted(seq_banks.items()):
            scan = SequenceBankScan(
                bank_number=bank_number,
                bank_file_names=_file_stems(bank_path, layout.BANK_EXT),
            )
            seq_dirs = _numbered_dirs(bank_path, layout.SEQUENCE_DIR_PATTERN, layout.SEQUENCES_PER_BANK)
            for sequence_number in range(1, layout.SEQUENCES_PER_BANK + 1):
                if sequence_number not in seq_dirs:
                    result.details.missing_sequences.append(
                        f"{layout.bank_dir_name(bank_number)}/{layout.sequence_dir_name(sequence_number)}"
                    )
            for sequence_number, seq_path in sorted(seq_dirs.items()):
                mmseq_files = _files_with_ext(seq_path, layout.SEQUENCE_EXT)
                scan.sequences.append(SequenceSlot(
                    bank_number=bank_number,
                    sequence_number=sequence_number,
                    sequence_name=_stem(mmseq_files[0], layout.SEQUENCE_EXT) if mmseq_files else None,
                    path=mmseq_files[0] if mmseq_files else None,
                ))
            banks.append(scan)
        return banks

    def _check_bank_files(
        self,
        label: str,
        bank_number: int,
        names: List[str],
        result: ValidationResult,
    ) -> None:
        """A bank directory must hold exactly one validly named .bank file."""
        if not names:
            result.errors.append(f"{label} {bank_number} is missing its .bank file")
            return
        if len(names) > 1:
            result.errors.append(f"{label} {bank_number} has multiple .bank files")
        for name in names:
            if not is_valid_bank_file_name(name):
                result.details.invalid_names.append(name)
                result.errors.append(f"Invalid bank file name in {label.lower()} {bank_number}: {name}")

    def _check_banks(self, root: Path, result: ValidationResult) -> None:
        banks = self.scan_banks(root)
        details = result.details
        details.bank_count = len(banks)

        found = {bank.bank_number for bank in banks}
        for number in range(1, layout.BANK_COUNT + 1):
            if number not in found:
                details.missing_banks.append(layout.bank_dir_name(number))
        if details.missing_banks:
            result.warnings.append(f"Missing banks: {', '.join(details.missing_banks)}")

        for bank in banks:
            self._check_bank_files("Bank", bank.bank_number, bank.bank_file_names, result)

            patch_count = len(bank.patches)
            details.patch_count += patch_count
            if patch_count < layout.PATCHES_PER_BANK:
                result.warnings.append(
                    f"Bank {bank.bank_number} has only {patch_count} patches "
                    f"(expected {layout.PATCHES_PER_BANK})"
                )
            defaults = sum(1 for patch in bank.patches if patch.is_default_patch)
            if defaults:
                result.warnings.append(
                    f"Bank {bank.bank_number} has {defaults} default patches (no .mmp file)"
                )

            for patch in bank.patches:
                if patch.path is not None and not is_utf8_text(patch.path):
                    result.errors.append(f"Patch file is not UTF-8 text: {patch.path}")

            present = {patch.patch_number for patch in bank.patches}
            for number in range(1, layout.PATCHES_PER_BANK + 1):
                if number not in present:
                    details.missing_patches.append(
                        f"{layout.bank_dir_name(bank.bank_number)}/{layout.patch_dir_name(number)}"
                    )

    def _check_sequences(self, root: Path, result: ValidationResult) -> None:
        banks = self.scan_sequences(root, result)
        for bank in banks:
            self._check_bank_files("Sequence bank", bank.bank_number, bank.bank_file_names, result)
            result.details.sequence_count += len(bank.sequences)
            for seq in bank.sequences:
                if seq.sequence_name is None:
                    result.errors.append(
                        f"Sequence {seq.sequence_number} in bank {seq.bank_number} "
                        f"is missing its .mmseq file"
                    )
                elif not is_utf8_text(seq.path):
                    result.errors.append(f"Sequence file is not UTF-8 text: {seq.path}")


def validate_library(library_path) -> ValidationResult:
    """Validate a library directory. Never raises."""
    return LibraryValidator().validate_library(library_path)
