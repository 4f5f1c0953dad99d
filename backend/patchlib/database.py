"""
Database Schema and Operations for the Patch Library Store (patchlib.db)
SQLite database holding libraries, their 32 banks, patches and sequences.
"""

import json
import os
import sqlite3
from pathlib import Path
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field

from .errors import DuplicateError, NotFoundError
from .tags import normalize_tags

DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "data" / "patchlib.db"

BANK_KINDS = ("patch", "sequence")


def resolve_db_path(db_path: Optional[str] = None) -> str:
    if db_path:
        return str(db_path)
    env = os.getenv("PATCHLIB_DB_PATH")
    if env:
        return env
    return str(DEFAULT_DB_PATH)


def serialize_tags(tags: List[str]) -> str:
    return json.dumps(normalize_tags(tags))


def deserialize_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return normalize_tags(json.loads(raw))


@dataclass
class Library:
    """A library imported from one directory tree."""
    id: int
    name: str
    fingerprint: str


@dataclass
class Bank:
    """One of the 32 numbered banks of a library."""
    id: int
    library_id: int
    bank_number: int
    name: str
    kind: str
    fingerprint: str
    content: Optional[bytes] = None


@dataclass
class Patch:
    """One of the 16 patch slots of a patch bank."""
    id: int
    bank_id: int
    patch_number: int
    name: str
    fingerprint: str
    content: Optional[str] = None
    default_patch: bool = False
    favorited: bool = False
    tags: List[str] = field(default_factory=list)


@dataclass
class PatchSequence:
    """
    One of the 16 sequence slots of a sequence bank.

    A sequence row can be shared by several banks; when loaded through a
    bank, ``sequence_number`` and ``name`` are the ones recorded for that bank.
    """
    id: int
    bank_id: int
    sequence_number: int
    name: str
    fingerprint: str
    content: str


class PatchLibraryDB:
    """SQLite database manager for the patch library store."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = resolve_db_path(db_path)
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _cursor(self) -> sqlite3.Cursor:
        if not self.conn:
            raise RuntimeError("Database not connected")
        return self.conn.cursor()

    def create_schema(self) -> None:
        """Create the database schema for libraries, banks, patches and sequences."""
        cursor = self._cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS libraries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                fingerprint TEXT NOT NULL UNIQUE,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS banks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                library_id INTEGER NOT NULL,
                bank_number INTEGER NOT NULL,
                name TEXT NOT NULL,
                kind TEXT NOT NULL CHECK (kind IN ('patch', 'sequence')),
                fingerprint TEXT NOT NULL,
                content BLOB,
                UNIQUE (library_id, kind, bank_number),
                FOREIGN KEY (library_id) REFERENCES libraries(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS patches (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bank_id INTEGER NOT NULL,
                patch_number INTEGER NOT NULL,
                name TEXT NOT NULL,
                fingerprint TEXT NOT NULL UNIQUE,
                content TEXT,
                default_patch INTEGER NOT NULL DEFAULT 0,
                favorited INTEGER NOT NULL DEFAULT 0,
                tags_json TEXT NOT NULL DEFAULT '[]',
                UNIQUE (bank_id, patch_number),
                FOREIGN KEY (bank_id) REFERENCES banks(id) ON DELETE CASCADE
            )
        """)

        # bank_id is the bank the sequence was first imported from; other
        # banks reference it through bank_sequences
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS patch_sequences (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bank_id INTEGER NOT NULL,
                sequence_number INTEGER NOT NULL,
                name TEXT NOT NULL,
                fingerprint TEXT NOT NULL UNIQUE,
                content TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS bank_sequences (
                bank_id INTEGER NOT NULL,
                sequence_id INTEGER NOT NULL,
                sequence_number INTEGER NOT NULL,
                name TEXT NOT NULL,
                PRIMARY KEY (bank_id, sequence_number),
                FOREIGN KEY (bank_id) REFERENCES banks(id) ON DELETE CASCADE,
                FOREIGN KEY (sequence_id) REFERENCES patch_sequences(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_banks_library
            ON banks(library_id, kind, bank_number)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_patches_bank
            ON patches(bank_id, patch_number)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_bank_sequences_sequence
            ON bank_sequences(sequence_id)
        """)

        self.conn.commit()

    def reset_database(self) -> None:
        """Clear all data and recreate schema."""
        cursor = self._cursor()
        cursor.execute("DROP TABLE IF EXISTS bank_sequences")
        cursor.execute("DROP TABLE IF EXISTS patch_sequences")
        cursor.execute("DROP TABLE IF EXISTS patches")
        cursor.execute("DROP TABLE IF EXISTS banks")
        cursor.execute("DROP TABLE IF EXISTS libraries")
        self.conn.commit()
        self.create_schema()

    def _insert(self, sql: str, params: tuple, what: str) -> int:
        cursor = self._cursor()
        try:
            cursor.execute(sql, params)
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            raise DuplicateError(f"{what} already exists: {e}") from e
        self.conn.commit()
        return cursor.lastrowid

    # ---- libraries ----

    def create_library(self, name: str, fingerprint: str) -> Library:
        library_id = self._insert(
            "INSERT INTO libraries (name, fingerprint) VALUES (?, ?)",
            (name, fingerprint),
            f"Library with fingerprint {fingerprint}",
        )
        return Library(id=library_id, name=name, fingerprint=fingerprint)

    def find_library_by_fingerprint(self, fingerprint: str) -> Optional[Library]:
        cursor = self._cursor()
        cursor.execute(
            "SELECT id, name, fingerprint FROM libraries WHERE fingerprint = ?",
            (fingerprint,),
        )
        row = cursor.fetchone()
        return Library(**dict(row)) if row else None

    def get_library(self, library_id: int) -> Optional[Library]:
        cursor = self._cursor()
        cursor.execute("SELECT id, name, fingerprint FROM libraries WHERE id = ?", (library_id,))
        row = cursor.fetchone()
        return Library(**dict(row)) if row else None

    def get_all_libraries(self) -> List[Library]:
        cursor = self._cursor()
        cursor.execute("SELECT id, name, fingerprint FROM libraries ORDER BY id")
        return [Library(**dict(row)) for row in cursor.fetchall()]

    def delete_library(self, library_id: int) -> bool:
        """
        Delete a library with its banks, patches and bank associations.

        Sequences that no bank references any more are removed as well;
        sequences shared with another library are kept.
        """
        cursor = self._cursor()
        cursor.execute("DELETE FROM libraries WHERE id = ?", (library_id,))
        deleted = cursor.rowcount > 0
        cursor.execute("""
            DELETE FROM patch_sequences
            WHERE id NOT IN (SELECT sequence_id FROM bank_sequences)
        """)
        # surviving shared sequences move to a bank that still references them
        cursor.execute("""
            UPDATE patch_sequences
            SET bank_id = (
                SELECT MIN(bs.bank_id) FROM bank_sequences bs
                WHERE bs.sequence_id = patch_sequences.id
            )
            WHERE bank_id NOT IN (SELECT id FROM banks)
        """)
        self.conn.commit()
        return deleted

    # ---- banks ----

    def create_bank(
        self,
        library_id: int,
        bank_number: int,
        name: str,
        kind: str,
        fingerprint: str,
        content: Optional[bytes] = None,
    ) -> Bank:
        if kind not in BANK_KINDS:
            raise ValueError(f"Invalid bank kind: {kind}")
        bank_id = self._insert(
            """
            INSERT INTO banks (library_id, bank_number, name, kind, fingerprint, content)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (library_id, bank_number, name, kind, fingerprint, content),
            f"{kind.capitalize()} bank {bank_number} of library {library_id}",
        )
        return Bank(
            id=bank_id,
            library_id=library_id,
            bank_number=bank_number,
            name=name,
            kind=kind,
            fingerprint=fingerprint,
            content=content,
        )

    def find_banks_by_library(self, library_id: int, kind: Optional[str] = None) -> List[Bank]:
        """Banks of a library, patch banks first, each kind in bank-number order."""
        cursor = self._cursor()
        if kind:
            cursor.execute("""
                SELECT id, library_id, bank_number, name, kind, fingerprint, content
                FROM banks
                WHERE library_id = ? AND kind = ?
                ORDER BY bank_number
            """, (library_id, kind))
        else:
            cursor.execute("""
                SELECT id, library_id, bank_number, name, kind, fingerprint, content
                FROM banks
                WHERE library_id = ?
                ORDER BY CASE kind WHEN 'patch' THEN 0 ELSE 1 END, bank_number
            """, (library_id,))
        return [self._row_to_bank(row) for row in cursor.fetchall()]

    def get_bank(self, bank_id: int) -> Optional[Bank]:
        cursor = self._cursor()
        cursor.execute("""
            SELECT id, library_id, bank_number, name, kind, fingerprint, content
            FROM banks WHERE id = ?
        """, (bank_id,))
        row = cursor.fetchone()
        return self._row_to_bank(row) if row else None

    @staticmethod
    def _row_to_bank(row: sqlite3.Row) -> Bank:
        data = dict(row)
        if data["content"] is not None:
            data["content"] = bytes(data["content"])
        return Bank(**data)

    # ---- patches ----

    def create_patch(
        self,
        bank_id: int,
        patch_number: int,
        name: str,
        fingerprint: str,
        content: Optional[str] = None,
        default_patch: bool = False,
        favorited: bool = False,
        tags: Optional[List[str]] = None,
    ) -> Patch:
        tags = normalize_tags(tags or [])
        patch_id = self._insert(
            """
            INSERT INTO patches (
                bank_id, patch_number, name, fingerprint, content,
                default_patch, favorited, tags_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                bank_id, patch_number, name, fingerprint, content,
                int(default_patch), int(favorited), serialize_tags(tags),
            ),
            f"Patch with fingerprint {fingerprint}",
        )
        return Patch(
            id=patch_id,
            bank_id=bank_id,
            patch_number=patch_number,
            name=name,
            fingerprint=fingerprint,
            content=content,
            default_patch=default_patch,
            favorited=favorited,
            tags=tags,
        )

    def find_patches_by_bank(self, bank_id: int) -> List[Patch]:
        cursor = self._cursor()
        cursor.execute("""
            SELECT * FROM patches WHERE bank_id = ? ORDER BY patch_number
        """, (bank_id,))
        return [self._row_to_patch(row) for row in cursor.fetchall()]

    def get_patch(self, patch_id: int) -> Optional[Patch]:
        cursor = self._cursor()
        cursor.execute("SELECT * FROM patches WHERE id = ?", (patch_id,))
        row = cursor.fetchone()
        return self._row_to_patch(row) if row else None

    def update_patch_favorite(self, patch_id: int, favorited: bool) -> Patch:
        cursor = self._cursor()
        cursor.execute(
            "UPDATE patches SET favorited = ? WHERE id = ?",
            (int(favorited), patch_id),
        )
        self.conn.commit()
        return self._require_patch(patch_id)

    def update_patch_tags(self, patch_id: int, tags: List[str]) -> Patch:
        cursor = self._cursor()
        cursor.execute(
            "UPDATE patches SET tags_json = ? WHERE id = ?",
            (serialize_tags(tags), patch_id),
        )
        self.conn.commit()
        return self._require_patch(patch_id)

    def _require_patch(self, patch_id: int) -> Patch:
        patch = self.get_patch(patch_id)
        if patch is None:
            raise NotFoundError(f"Patch with ID {patch_id} not found")
        return patch

    @staticmethod
    def _row_to_patch(row: sqlite3.Row) -> Patch:
        return Patch(
            id=row["id"],
            bank_id=row["bank_id"],
            patch_number=row["patch_number"],
            name=row["name"],
            fingerprint=row["fingerprint"],
            content=row["content"],
            default_patch=bool(row["default_patch"]),
            favorited=bool(row["favorited"]),
            tags=deserialize_tags(row["tags_json"]),
        )

    # ---- sequences ----

    def create_sequence(
        self,
        bank_id: int,
        sequence_number: int,
        name: str,
        fingerprint: str,
        content: str,
    ) -> PatchSequence:
        """Insert a sequence row. Use associate_sequence_with_bank to place it in a bank."""
        sequence_id = self._insert(
            """
            INSERT INTO patch_sequences (bank_id, sequence_number, name, fingerprint, content)
            VALUES (?, ?, ?, ?, ?)
            """,
            (bank_id, sequence_number, name, fingerprint, content),
            f"Sequence with fingerprint {fingerprint}",
        )
        return PatchSequence(
            id=sequence_id,
            bank_id=bank_id,
            sequence_number=sequence_number,
            name=name,
            fingerprint=fingerprint,
            content=content,
        )

    def find_sequence_by_fingerprint(self, fingerprint: str) -> Optional[PatchSequence]:
        cursor = self._cursor()
        cursor.execute("""
            SELECT id, bank_id, sequence_number, name, fingerprint, content
            FROM patch_sequences WHERE fingerprint = ?
        """, (fingerprint,))
        row = cursor.fetchone()
        return PatchSequence(**dict(row)) if row else None

    def associate_sequence_with_bank(
        self,
        sequence_id: int,
        bank_id: int,
        sequence_number: int,
        name: str,
    ) -> None:
        self._insert(
            """
            INSERT INTO bank_sequences (bank_id, sequence_id, sequence_number, name)
            VALUES (?, ?, ?, ?)
            """,
            (bank_id, sequence_id, sequence_number, name),
            f"Sequence slot {sequence_number} of bank {bank_id}",
        )

    def find_sequences_by_bank(self, bank_id: int) -> List[PatchSequence]:
        cursor = self._cursor()
        cursor.execute("""
            SELECT ps.id, bs.bank_id, bs.sequence_number, bs.name, ps.fingerprint, ps.content
            FROM bank_sequences bs
            JOIN patch_sequences ps ON ps.id = bs.sequence_id
            WHERE bs.bank_id = ?
            ORDER BY bs.sequence_number
        """, (bank_id,))
        return [PatchSequence(**dict(row)) for row in cursor.fetchall()]

    def count_sequence_references(self, sequence_id: int) -> int:
        cursor = self._cursor()
        cursor.execute(
            "SELECT COUNT(*) AS count FROM bank_sequences WHERE sequence_id = ?",
            (sequence_id,),
        )
        return cursor.fetchone()["count"]

    # ---- statistics ----

    def get_statistics(self) -> Dict[str, Any]:
        """Get database statistics."""
        cursor = self._cursor()

        stats = {}

        cursor.execute("SELECT COUNT(*) as count FROM libraries")
        stats['libraries'] = cursor.fetchone()['count']

        cursor.execute("""
            SELECT kind, COUNT(*) as count
            FROM banks
            GROUP BY kind
        """)
        by_kind = {row['kind']: row['count'] for row in cursor.fetchall()}
        stats['banks'] = {kind: by_kind.get(kind, 0) for kind in BANK_KINDS}

        cursor.execute("""
            SELECT COUNT(*) as total,
                   COALESCE(SUM(default_patch), 0) as defaults,
                   COALESCE(SUM(favorited), 0) as favorites
            FROM patches
        """)
        row = cursor.fetchone()
        stats['patches'] = {
            'total': row['total'],
            'default': row['defaults'],
            'favorited': row['favorites'],
        }

        cursor.execute("SELECT COUNT(*) as count FROM patch_sequences")
        stats['sequences'] = cursor.fetchone()['count']

        cursor.execute("SELECT COUNT(*) as count FROM bank_sequences")
        stats['sequence_slots'] = cursor.fetchone()['count']

        return stats
