import argparse
import asyncio
import logging
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from patchlib.database import PatchLibraryDB
from patchlib.ingest import LibraryImporter


async def import_all(db: PatchLibraryDB, roots) -> int:
    importer = LibraryImporter(db)
    failures = 0
    for root in roots:
        result = await importer.import_library(root)
        if result.success:
            counts = result.imported
            print(
                f"imported {root} | library_id={result.library_id} banks={counts.banks} "
                f"patches={counts.patches} sequences={counts.sequences} "
                f"shared={counts.reused_sequences}"
            )
        else:
            failures += 1
            print(f"skipped {root} | {result.message}")
    return failures


def main() -> None:
    parser = argparse.ArgumentParser(description="Import library directories into the patch library store.")
    parser.add_argument("roots", nargs="+", help="Library directories to import, in order.")
    parser.add_argument("--db", default=None, help="Database path (default: $PATCHLIB_DB_PATH or backend/data/patchlib.db)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s - %(message)s")

    with PatchLibraryDB(args.db) as db:
        db.create_schema()
        failures = asyncio.run(import_all(db, args.roots))

    print(f"import complete | requested={len(args.roots)} failed={failures}")
    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
