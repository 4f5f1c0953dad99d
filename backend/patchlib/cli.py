#!/usr/bin/env python3
"""
Patch Library Engine - Main CLI Entry Point
===========================================
Unified CLI for all patch library operations.

Usage:
    patchlib validate ./MyLibrary
    patchlib import ./MyLibrary
    patchlib list
    patchlib banks 1
    patchlib patches 1 3
    patchlib favorite 42
    patchlib tag 42 bass dark
    patchlib export 1 ./exported
    patchlib delete 1
    patchlib info
"""

import argparse
import asyncio
import sys

from .database import PatchLibraryDB


def _open_db(args) -> PatchLibraryDB:
    db = PatchLibraryDB(args.db)
    db.connect()
    db.create_schema()
    return db


def cmd_validate(args):
    """Handle validate command."""
    from .validator import validate_library

    result = validate_library(args.library_dir)
    details = result.details

    print("\n" + "=" * 50)
    print("LIBRARY VALIDATION")
    print("=" * 50)
    print(f"Path: {args.library_dir}")
    print(f"Valid: {'yes' if result.is_valid else 'no'}")
    print(f"Banks: {details.bank_count}")
    print(f"Patches: {details.patch_count}")
    print(f"Sequences: {details.sequence_count}")
    if details.missing_banks:
        print(f"Missing banks: {', '.join(details.missing_banks)}")

    for error in result.errors:
        print(f"  ERROR: {error}")
    for warning in result.warnings:
        print(f"  WARNING: {warning}")

    return 0 if result.is_valid else 1


def cmd_import(args):
    """Handle import command."""
    from .ingest import import_library

    db = _open_db(args)
    try:
        result = asyncio.run(import_library(args.library_dir, db))
    finally:
        db.close()

    if not result.success:
        print(f"Import failed: {result.message}", file=sys.stderr)
        return 1

    counts = result.imported
    print(f"\n{'=' * 50}")
    print("IMPORT COMPLETE")
    print(f"{'=' * 50}")
    print(f"Library ID: {result.library_id}")
    print(f"Banks: {counts.banks}")
    print(f"Patches: {counts.patches}")
    print(f"Sequences: {counts.sequences} ({counts.reused_sequences} shared)")
    return 0


def cmd_export(args):
    """Handle export command."""
    from .export import export_library

    db = _open_db(args)
    try:
        result = asyncio.run(export_library(args.library_id, args.target_dir, db))
    finally:
        db.close()

    if not result.success:
        print(f"Export failed: {result.message}", file=sys.stderr)
        return 1

    print(f"Exported to: {result.export_path}")
    return 0


def cmd_list(args):
    """Handle list command."""
    db = _open_db(args)
    try:
        libraries = db.get_all_libraries()
    finally:
        db.close()

    if not libraries:
        print("No libraries imported")
        return 0

    print(f"\n{len(libraries)} libraries:\n")
    for library in libraries:
        print(f"  ID {library.id}: {library.name} [{library.fingerprint[:12]}]")
    return 0


def cmd_banks(args):
    """Handle banks command."""
    db = _open_db(args)
    try:
        if db.get_library(args.library_id) is None:
            print(f"Error: Library {args.library_id} not found", file=sys.stderr)
            return 1
        banks = db.find_banks_by_library(args.library_id, kind="patch")
    finally:
        db.close()

    for bank in banks:
        print(f"  ID {bank.id}: bank{bank.bank_number:02d} {bank.name}")
    return 0


def cmd_patches(args):
    """Handle patches command."""
    db = _open_db(args)
    try:
        bank = db.get_bank(args.bank_id)
        if bank is None or bank.library_id != args.library_id:
            print("Error: Bank not found in the specified library", file=sys.stderr)
            return 1
        patches = db.find_patches_by_bank(bank.id)
    finally:
        db.close()

    for patch in patches:
        flags = []
        if patch.default_patch:
            flags.append("default")
        if patch.favorited:
            flags.append("favorite")
        line = f"  ID {patch.id}: patch{patch.patch_number:02d} {patch.name}"
        if flags:
            line += f" ({', '.join(flags)})"
        if patch.tags:
            line += f" tags={', '.join(patch.tags)}"
        print(line)
    return 0


def cmd_favorite(args):
    """Handle favorite command."""
    db = _open_db(args)
    try:
        patch = db.update_patch_favorite(args.patch_id, not args.off)
    finally:
        db.close()

    state = "favorited" if patch.favorited else "not favorited"
    print(f"Patch {patch.id} ({patch.name}) is {state}")
    return 0


def cmd_tag(args):
    """Handle tag command."""
    db = _open_db(args)
    try:
        patch = db.update_patch_tags(args.patch_id, args.tags)
    finally:
        db.close()

    print(f"Patch {patch.id} ({patch.name}) tags: {', '.join(patch.tags) or '-'}")
    return 0


def cmd_delete(args):
    """Handle delete command."""
    db = _open_db(args)
    try:
        deleted = db.delete_library(args.library_id)
    finally:
        db.close()

    if not deleted:
        print(f"Error: Library {args.library_id} not found", file=sys.stderr)
        return 1
    print(f"Deleted library {args.library_id}")
    return 0


def cmd_info(args):
    """Handle info command."""
    db = _open_db(args)
    try:
        stats = db.get_statistics()
    finally:
        db.close()

    print("\n" + "=" * 50)
    print("PATCH LIBRARY STORE")
    print("=" * 50)
    print(f"Database: {db.db_path}")
    print(f"Libraries: {stats['libraries']}")
    print(f"Patch banks: {stats['banks']['patch']}")
    print(f"Sequence banks: {stats['banks']['sequence']}")
    print(f"Patches: {stats['patches']['total']} "
          f"({stats['patches']['default']} default, {stats['patches']['favorited']} favorited)")
    print(f"Sequences: {stats['sequences']} stored, {stats['sequence_slots']} slots")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='patchlib',
        description='Patch Library Engine - Import, export and validate synthesizer patch libraries',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--db', default=None,
                        help='SQLite database path (default: $PATCHLIB_DB_PATH or backend/data/patchlib.db)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # VALIDATE command
    validate_parser = subparsers.add_parser('validate', help='Check a library directory against the format')
    validate_parser.add_argument('library_dir', help='Library root directory')
    validate_parser.set_defaults(func=cmd_validate)

    # IMPORT command
    import_parser = subparsers.add_parser('import', help='Import a library directory')
    import_parser.add_argument('library_dir', help='Library root directory')
    import_parser.set_defaults(func=cmd_import)

    # EXPORT command
    export_parser = subparsers.add_parser('export', help='Export a library to a directory')
    export_parser.add_argument('library_id', type=int, help='Library ID to export')
    export_parser.add_argument('target_dir', help='Target directory')
    export_parser.set_defaults(func=cmd_export)

    # LIST command
    list_parser = subparsers.add_parser('list', help='List imported libraries')
    list_parser.set_defaults(func=cmd_list)

    # BANKS command
    banks_parser = subparsers.add_parser('banks', help='List the patch banks of a library')
    banks_parser.add_argument('library_id', type=int, help='Library ID')
    banks_parser.set_defaults(func=cmd_banks)

    # PATCHES command
    patches_parser = subparsers.add_parser('patches', help='List the patches of a bank')
    patches_parser.add_argument('library_id', type=int, help='Library ID')
    patches_parser.add_argument('bank_id', type=int, help='Bank ID')
    patches_parser.set_defaults(func=cmd_patches)

    # FAVORITE command
    favorite_parser = subparsers.add_parser('favorite', help='Mark a patch as favorite')
    favorite_parser.add_argument('patch_id', type=int, help='Patch ID')
    favorite_parser.add_argument('--off', action='store_true', help='Remove the favorite mark')
    favorite_parser.set_defaults(func=cmd_favorite)

    # TAG command
    tag_parser = subparsers.add_parser('tag', help='Replace the tags of a patch')
    tag_parser.add_argument('patch_id', type=int, help='Patch ID')
    tag_parser.add_argument('tags', nargs='*', help='New tags (none clears them)')
    tag_parser.set_defaults(func=cmd_tag)

    # DELETE command
    delete_parser = subparsers.add_parser('delete', help='Delete a library and its banks')
    delete_parser.add_argument('library_id', type=int, help='Library ID')
    delete_parser.set_defaults(func=cmd_delete)

    # INFO command
    info_parser = subparsers.add_parser('info', help='Display store statistics')
    info_parser.set_defaults(func=cmd_info)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
