"""SQLite storage adapter.

Implements the core StoragePort and SessionStorePort using a simple SQLite
database. Every call opens its own connection, so a single instance can be
shared by concurrent requests.
"""

from __future__ import annotations

import sqlite3
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from core.models import AdminStats, Chat, ChatSubscription, File, FileKind, User
from core.state import SessionState


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the StoragePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - users: bot users and their settings
        - chats: channels/chats connected by owners
        - files: shared media, addressed publicly by public_id
        - file_restrictions: chat subscriptions required per file
        - downloads: append-only delivery log
        - session_states: per-user flow marker with expiry
        """

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY,
                    first_name TEXT NOT NULL,
                    last_name TEXT,
                    username TEXT,
                    language_code TEXT,
                    is_admin INTEGER NOT NULL DEFAULT 0,
                    settings_long_ids INTEGER NOT NULL DEFAULT 0,
                    joined_at TIMESTAMP
                )
                """
            )
            # One owner can connect a given Telegram chat only once.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chats (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    type TEXT NOT NULL,
                    owner_id INTEGER NOT NULL,
                    username TEXT,
                    linked_at TIMESTAMP,
                    UNIQUE (owner_id, telegram_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS files (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id INTEGER NOT NULL,
                    kind TEXT NOT NULL,
                    telegram_file_id TEXT NOT NULL,
                    public_id TEXT NOT NULL UNIQUE,
                    caption TEXT,
                    mime_type TEXT,
                    file_name TEXT,
                    size INTEGER,
                    created_at TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS file_restrictions (
                    file_id INTEGER NOT NULL,
                    chat_id INTEGER NOT NULL,
                    PRIMARY KEY (file_id, chat_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS downloads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    file_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS session_states (
                    user_id INTEGER PRIMARY KEY,
                    state TEXT NOT NULL,
                    expires_at REAL NOT NULL
                )
                """
            )

    def ping(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()

    # Users ------------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return User(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            username=row["username"],
            language_code=row["language_code"],
            is_admin=bool(row["is_admin"]),
            settings_long_ids=bool(row["settings_long_ids"]),
            joined_at=_dt(row["joined_at"]),
        )

    def save_user(self, user: User) -> None:
        """Upsert a user row."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (
                    id, first_name, last_name, username, language_code,
                    is_admin, settings_long_ids, joined_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    username = excluded.username,
                    language_code = excluded.language_code,
                    is_admin = excluded.is_admin,
                    settings_long_ids = excluded.settings_long_ids
                """,
                (
                    user.id,
                    user.first_name,
                    user.last_name,
                    user.username,
                    user.language_code,
                    int(user.is_admin),
                    int(user.settings_long_ids),
                    _iso(user.joined_at),
                ),
            )

    # Files ------------------------------------------------------------------

    def _file_from_row(self, conn: sqlite3.Connection, row: sqlite3.Row) -> File:
        restrictions = conn.execute(
            "SELECT chat_id FROM file_restrictions WHERE file_id = ?",
            (row["id"],),
        ).fetchall()
        return File(
            id=row["id"],
            owner_id=row["owner_id"],
            kind=FileKind(row["kind"]),
            telegram_file_id=row["telegram_file_id"],
            public_id=row["public_id"],
            caption=row["caption"],
            mime_type=row["mime_type"],
            file_name=row["file_name"],
            size=row["size"],
            restrictions=frozenset(ChatSubscription(chat_id=item["chat_id"]) for item in restrictions),
            created_at=_dt(row["created_at"]),
        )

    def add_file(self, file: File) -> File:
        """Insert a file and return it with its assigned id.

        A non-zero `file.id` is kept (imports); zero lets SQLite assign one.
        """

        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO files (
                    id, owner_id, kind, telegram_file_id, public_id, caption,
                    mime_type, file_name, size, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    file.id or None,
                    file.owner_id,
                    file.kind.value,
                    file.telegram_file_id,
                    file.public_id,
                    file.caption,
                    file.mime_type,
                    file.file_name,
                    file.size,
                    _iso(file.created_at),
                ),
            )
            file.id = int(cur.lastrowid)
            for restriction in file.restrictions:
                conn.execute(
                    "INSERT INTO file_restrictions (file_id, chat_id) VALUES (?, ?)",
                    (file.id, restriction.chat_id),
                )
        return file

    def get_file(self, file_id: int) -> Optional[File]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM files WHERE id = ?", (file_id,)).fetchone()
            return self._file_from_row(conn, row) if row else None

    def get_file_by_public_id(self, public_id: str) -> Optional[File]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM files WHERE public_id = ?", (public_id,)).fetchone()
            return self._file_from_row(conn, row) if row else None

    def set_file_restrictions(self, file_id: int, restrictions: frozenset[ChatSubscription]) -> None:
        """Replace the restriction set of a file in one transaction."""

        with self._connect() as conn:
            conn.execute("DELETE FROM file_restrictions WHERE file_id = ?", (file_id,))
            conn.executemany(
                "INSERT INTO file_restrictions (file_id, chat_id) VALUES (?, ?)",
                [(file_id, restriction.chat_id) for restriction in restrictions],
            )

    def delete_file(self, file_id: int) -> bool:
        with self._connect() as conn:
            conn.execute("DELETE FROM file_restrictions WHERE file_id = ?", (file_id,))
            cur = conn.execute("DELETE FROM files WHERE id = ?", (file_id,))
            return cur.rowcount > 0

    def add_download(self, file_id: int, user_id: int) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO downloads (file_id, user_id, at) VALUES (?, ?, ?)",
                (file_id, user_id, datetime.now().astimezone().isoformat()),
            )

    def count_downloads(self, file_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM downloads WHERE file_id = ?", (file_id,)).fetchone()
        return int(row["n"])

    # Chats ------------------------------------------------------------------

    @staticmethod
    def _chat_from_row(row: sqlite3.Row) -> Chat:
        return Chat(
            id=row["id"],
            telegram_id=row["telegram_id"],
            title=row["title"],
            type=row["type"],
            owner_id=row["owner_id"],
            username=row["username"],
            linked_at=_dt(row["linked_at"]),
        )

    def add_chat(self, chat: Chat) -> Chat:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO chats (id, telegram_id, title, type, owner_id, username, linked_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chat.id or None,
                    chat.telegram_id,
                    chat.title,
                    chat.type,
                    chat.owner_id,
                    chat.username,
                    _iso(chat.linked_at),
                ),
            )
            chat.id = int(cur.lastrowid)
        return chat

    def get_chat(self, chat_id: int) -> Optional[Chat]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchone()
        return self._chat_from_row(row) if row else None

    def get_chat_by_telegram_id(self, owner_id: int, telegram_id: int) -> Optional[Chat]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM chats WHERE owner_id = ? AND telegram_id = ?",
                (owner_id, telegram_id),
            ).fetchone()
        return self._chat_from_row(row) if row else None

    def list_chats(self, owner_id: int) -> List[Chat]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM chats WHERE owner_id = ? ORDER BY id", (owner_id,)).fetchall()
        return [self._chat_from_row(row) for row in rows]

    def list_chats_by_telegram_id(self, telegram_id: int) -> List[Chat]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM chats WHERE telegram_id = ? ORDER BY id", (telegram_id,)).fetchall()
        return [self._chat_from_row(row) for row in rows]

    def update_chat(self, chat: Chat) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE chats SET title = ?, type = ?, username = ? WHERE id = ?",
                (chat.title, chat.type, chat.username, chat.id),
            )

    def delete_chat(self, chat_id: int) -> bool:
        """Delete a chat and every restriction that references it."""

        with self._connect() as conn:
            conn.execute("DELETE FROM file_restrictions WHERE chat_id = ?", (chat_id,))
            cur = conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
            return cur.rowcount > 0

    def admin_stats(self) -> AdminStats:
        with self._connect() as conn:
            counts = {
                table: int(conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"])
                for table in ("users", "files", "downloads", "chats")
            }
        return AdminStats(**counts)


class SQLiteStateStore:
    """SessionStorePort backed by the session_states table.

    Expiry is lazy: an expired row is deleted by the read that finds it.
    """

    def __init__(self, db_path: str, clock: Callable[[], float] = time.time) -> None:
        self._db_path = db_path
        self._clock = clock

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def get(self, user_id: int) -> Optional[SessionState]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT state, expires_at FROM session_states WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            if row["expires_at"] <= self._clock():
                conn.execute("DELETE FROM session_states WHERE user_id = ?", (user_id,))
                return None
            try:
                return SessionState(row["state"])
            except ValueError:
                # State written by an older release that no longer exists.
                conn.execute("DELETE FROM session_states WHERE user_id = ?", (user_id,))
                return None

    def set(self, user_id: int, state: SessionState, ttl: timedelta) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO session_states (user_id, state, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    state = excluded.state,
                    expires_at = excluded.expires_at
                """,
                (user_id, state.value, self._clock() + ttl.total_seconds()),
            )

    def clear(self, user_id: int) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM session_states WHERE user_id = ?", (user_id,))

    def cleanup_expired(self) -> int:
        """Delete expired rows and return the number removed."""

        with self._connect() as conn:
            cur = conn.execute("DELETE FROM session_states WHERE expires_at <= ?", (self._clock(),))
            return cur.rowcount
