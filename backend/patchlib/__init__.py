"""
Patch Library Engine
====================
Imports synthesizer patch libraries stored in the fixed bank/patch/sequence
directory format into a SQLite store, exports them back byte for byte, and
validates directory trees against the format.

Modules:
- fingerprint.py: SHA-256 content fingerprints for libraries, banks, patches and sequences
- validator.py: Read-only structural validation of a library directory
- ingest.py: Import pipeline with compensating rollback
- export.py: Export pipeline
- database.py: SQLite store for libraries, banks, patches and sequences
- tags.py: Implicit patch tags
- cli.py: Command line interface
"""

__version__ = "1.0.0"

from .database import PatchLibraryDB, Library, Bank, Patch, PatchSequence
from .errors import (
    PatchLibraryError,
    StructuralError,
    DuplicateError,
    IntegrityError,
    NotFoundError,
)
from .export import ExportResult, LibraryExporter, export_library
from .ingest import ImportResult, LibraryImporter, import_library
from .validator import LibraryValidator, ValidationResult, validate_library
