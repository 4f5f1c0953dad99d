from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Dict, List, Optional
import os
import logging
from pathlib import Path

from patchlib.database import PatchLibraryDB, Library, Bank, Patch
from patchlib.errors import NotFoundError
from patchlib.export import LibraryExporter
from patchlib.ingest import LibraryImporter
from patchlib.validator import validate_library

# Setup logging
logger = logging.getLogger(__name__)


# Pydantic response models for API
class LibraryResponse(BaseModel):
    id: int
    name: str
    fingerprint: str

    @classmethod
    def from_library(cls, library: Library) -> "LibraryResponse":
        return cls(id=library.id, name=library.name, fingerprint=library.fingerprint)


class BankResponse(BaseModel):
    id: int
    library_id: int
    bank_number: int
    name: str
    kind: str
    fingerprint: str

    @classmethod
    def from_bank(cls, bank: Bank) -> "BankResponse":
        return cls(
            id=bank.id,
            library_id=bank.library_id,
            bank_number=bank.bank_number,
            name=bank.name,
            kind=bank.kind,
            fingerprint=bank.fingerprint,
        )


class PatchResponse(BaseModel):
    id: int
    bank_id: int
    patch_number: int
    name: str
    fingerprint: str
    content: Optional[str] = None
    default_patch: bool
    favorited: bool
    tags: List[str]

    @classmethod
    def from_patch(cls, patch: Patch) -> "PatchResponse":
        """Convert Patch dataclass to response model."""
        return cls(
            id=patch.id,
            bank_id=patch.bank_id,
            patch_number=patch.patch_number,
            name=patch.name,
            fingerprint=patch.fingerprint,
            content=patch.content,
            default_patch=patch.default_patch,
            favorited=patch.favorited,
            tags=patch.tags,
        )


class ImportCountsResponse(BaseModel):
    libraries: int
    banks: int
    patches: int
    sequences: int
    reused_sequences: int


class ImportResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    library_id: Optional[int] = None
    imported: ImportCountsResponse


class ExportResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    export_path: Optional[str] = None


class ValidationDetailsResponse(BaseModel):
    bank_count: int
    patch_count: int
    sequence_count: int
    missing_banks: List[str]
    missing_patches: List[str]
    missing_sequences: List[str]
    invalid_names: List[str]


class ValidationResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    details: ValidationDetailsResponse


patchlib_router = APIRouter(prefix="/api/patchlib")

# Default export target, relative to the backend folder
DEFAULT_EXPORT_DIR = Path(__file__).parent / "exports"

_db: Optional[PatchLibraryDB] = None
_importer: Optional[LibraryImporter] = None


def get_export_dir() -> Path:
    return Path(os.environ.get("PATCHLIB_EXPORT_DIR", str(DEFAULT_EXPORT_DIR)))


def get_db() -> PatchLibraryDB:
    """Process-wide store, opened on first use."""
    global _db
    if _db is None:
        _db = PatchLibraryDB()
        _db.connect()
        _db.create_schema()
    return _db


def get_importer(db: PatchLibraryDB = Depends(get_db)) -> LibraryImporter:
    """Importer shared by all requests so imports of one tree are serialized."""
    global _importer
    if _importer is None or _importer.db is not db:
        _importer = LibraryImporter(db)
    return _importer


def close_db() -> None:
    global _db, _importer
    if _db is not None:
        _db.close()
    _db = None
    _importer = None


class PathRequest(BaseModel):
    path: str


class ExportRequest(BaseModel):
    library_id: int
    target_dir: Optional[str] = None


class PatchUpdateRequest(BaseModel):
    favorited: Optional[bool] = None
    tags: Optional[List[str]] = None


@patchlib_router.get("/libraries", response_model=List[LibraryResponse])
async def list_libraries(db: PatchLibraryDB = Depends(get_db)):
    """
    List all imported libraries.
    """
    libraries = db.get_all_libraries()
    logger.info(f"Loaded {len(libraries)} libraries")
    return [LibraryResponse.from_library(library) for library in libraries]


@patchlib_router.get("/libraries/{library_id}/banks", response_model=List[BankResponse])
async def list_banks(library_id: int, db: PatchLibraryDB = Depends(get_db)):
    """
    List the patch banks of a library.
    """
    if db.get_library(library_id) is None:
        raise HTTPException(status_code=404, detail="Library not found")
    banks = db.find_banks_by_library(library_id, kind="patch")
    return [BankResponse.from_bank(bank) for bank in banks]


@patchlib_router.get(
    "/libraries/{library_id}/banks/{bank_id}/patches",
    response_model=List[PatchResponse],
)
async def list_patches(library_id: int, bank_id: int, db: PatchLibraryDB = Depends(get_db)):
    """
    Get the patches of a bank, in slot order.
    """
    bank = db.get_bank(bank_id)
    if bank is None or bank.library_id != library_id:
        logger.error(f"Bank {bank_id} not found in library {library_id}")
        raise HTTPException(status_code=404, detail="Bank not found in the specified library")
    return [PatchResponse.from_patch(patch) for patch in db.find_patches_by_bank(bank.id)]


@patchlib_router.post("/import", response_model=ImportResponse)
async def import_library_endpoint(
    request: PathRequest,
    importer: LibraryImporter = Depends(get_importer),
):
    """
    Import a library directory that is reachable from the server.
    """
    try:
        result = await importer.import_library(request.path)
    except Exception as e:
        logger.error(f"Import error: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Import failed: {str(e)}")

    if not result.success:
        status = 409 if result.message == "Library already exists" else 400
        raise HTTPException(status_code=status, detail=result.message)
    return result.to_dict()


@patchlib_router.post("/export", response_model=ExportResponse)
async def export_library_endpoint(request: ExportRequest, db: PatchLibraryDB = Depends(get_db)):
    """
    Export a library into ``target_dir`` (default: the configured export directory).
    """
    target_dir = Path(request.target_dir) if request.target_dir else get_export_dir()
    try:
        result = await LibraryExporter(db).export_library(request.library_id, target_dir)
    except Exception as e:
        logger.error(f"Export error: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Export failed: {str(e)}")

    if not result.success:
        status = 404 if result.message == "Library not found" else 400
        raise HTTPException(status_code=status, detail=result.message)
    return result.to_dict()


@patchlib_router.post("/validate", response_model=ValidationResponse)
async def validate_library_endpoint(request: PathRequest):
    """
    Check a library directory against the on-disk format. Never modifies the store.
    """
    return validate_library(request.path).to_dict()


@patchlib_router.patch("/patches/{patch_id}", response_model=PatchResponse)
async def update_patch(
    patch_id: int,
    request: PatchUpdateRequest,
    db: PatchLibraryDB = Depends(get_db),
):
    """
    Update the favorite flag and/or the tags of a patch.
    """
    try:
        patch = db.get_patch(patch_id)
        if patch is None:
            raise NotFoundError(f"Patch with ID {patch_id} not found")
        if request.favorited is not None:
            patch = db.update_patch_favorite(patch_id, request.favorited)
            logger.info(f"Updated favorite status for patch {patch_id} to {request.favorited}")
        if request.tags is not None:
            patch = db.update_patch_tags(patch_id, request.tags)
            logger.info(f"Updated tags for patch {patch_id} to {patch.tags}")
        return PatchResponse.from_patch(patch)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@patchlib_router.delete("/libraries/{library_id}")
async def delete_library(library_id: int, db: PatchLibraryDB = Depends(get_db)):
    """
    Delete a library with its banks and patches.
    """
    if not db.delete_library(library_id):
        raise HTTPException(status_code=404, detail="Library not found")
    logger.info(f"Deleted library {library_id} and all related data")
    return {"success": True}


@patchlib_router.get("/info")
async def get_store_info(db: PatchLibraryDB = Depends(get_db)) -> Dict:
    """
    Get statistics for the patch library store.
    """
    return db.get_statistics()
