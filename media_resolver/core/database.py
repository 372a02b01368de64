"""
Local sqlite store: engine settings (secrets encrypted with a keyring-held
Fernet key) and the record of saved downloads.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Any, Optional, Dict, List
from cryptography.fernet import Fernet, InvalidToken
import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "media-resolver"
KEYRING_KEY_NAME = "encryption_key"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS config (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        is_encrypted INTEGER DEFAULT 0,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # One row per source URL; re-saving the same URL updates it
    """
    CREATE TABLE IF NOT EXISTS downloads (
        url TEXT PRIMARY KEY,
        local_path TEXT NOT NULL,
        media_type TEXT,
        account_name TEXT,
        source TEXT,
        file_size INTEGER,
        downloaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
)


def load_fernet() -> Fernet:
    """
    Fernet built from the keyring-held key, creating and storing one on first use.

    A keyring that cannot be read or written still yields a working (but
    per-process) key; values encrypted with it will not decrypt next run.
    """
    try:
        stored = keyring.get_password(KEYRING_SERVICE, KEYRING_KEY_NAME)
    except KeyringError as e:
        logger.warning(f"Could not read encryption key from keyring: {e}")
        stored = None
    if stored:
        return Fernet(stored.encode())

    key = Fernet.generate_key()
    try:
        keyring.set_password(KEYRING_SERVICE, KEYRING_KEY_NAME, key.decode())
    except KeyringError as e:
        logger.error(f"Could not store encryption key in keyring: {e}")
    return Fernet(key)


class DatabaseManager:
    """Settings and download history for the resolver"""

    VERSION = "1.0.0"

    def __init__(self, db_path: Optional[Path] = None):
        """
        Args:
            db_path: sqlite file. Defaults to ~/.media-resolver/data/data.db
        """
        if db_path is None:
            db_path = Path.home() / ".media-resolver" / "data" / "data.db"

        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        self._fernet = load_fernet()

    def connect(self) -> "DatabaseManager":
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        self.conn.row_factory = sqlite3.Row

        fresh = self._fetch_one(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='config'"
        ) is None
        for statement in SCHEMA:
            self.conn.execute(statement)
        self.conn.execute(
            "INSERT OR IGNORE INTO config (key, value) VALUES ('app_version', ?)",
            (self.VERSION,),
        )
        self.conn.commit()

        logger.info(f"Database created at {self.db_path}" if fresh else f"Database opened: {self.db_path}")
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def _fetch_one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchone()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_config(self, key: str, default: Any = None) -> Any:
        """Stored value for `key` (decrypted if needed), else `default`."""
        row = self._fetch_one("SELECT value, is_encrypted FROM config WHERE key = ?", (key,))
        if row is None:
            return default
        if not row["is_encrypted"]:
            return row["value"]
        try:
            return self._fernet.decrypt(row["value"].encode()).decode()
        except InvalidToken:
            logger.error(f"Could not decrypt config value '{key}' (keyring key changed?)")
            return default

    def set_config(self, key: str, value: Any, encrypt: bool = False):
        stored = str(value)
        if encrypt:
            stored = self._fernet.encrypt(stored.encode()).decode()
        self.conn.execute(
            """
            INSERT OR REPLACE INTO config (key, value, is_encrypted, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            """,
            (key, stored, int(encrypt)),
        )
        self.conn.commit()

    def get_all_config(self) -> Dict[str, str]:
        """Plain-text settings only; encrypted values are never listed."""
        rows = self.conn.execute("SELECT key, value FROM config WHERE is_encrypted = 0").fetchall()
        return {row["key"]: row["value"] for row in rows}

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def record_download(
        self,
        url: str,
        local_path: str,
        *,
        media_type: Optional[str] = None,
        account_name: Optional[str] = None,
        source: Optional[str] = None,
        file_size: Optional[int] = None,
    ):
        self.conn.execute(
            """
            INSERT INTO downloads
                (url, local_path, media_type, account_name, source, file_size, downloaded_at)
            VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(url) DO UPDATE SET
                local_path = excluded.local_path,
                media_type = COALESCE(excluded.media_type, downloads.media_type),
                account_name = COALESCE(excluded.account_name, downloads.account_name),
                source = COALESCE(excluded.source, downloads.source),
                file_size = COALESCE(excluded.file_size, downloads.file_size),
                downloaded_at = CURRENT_TIMESTAMP
            """,
            (url, local_path, media_type, account_name, source, file_size),
        )
        self.conn.commit()

    def get_download_by_url(self, url: str) -> Optional[Dict]:
        row = self._fetch_one("SELECT * FROM downloads WHERE url = ?", (url,))
        return dict(row) if row else None

    def get_recent_downloads(self, limit: int = 20) -> List[Dict]:
        rows = self.conn.execute(
            "SELECT * FROM downloads ORDER BY downloaded_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [dict(row) for row in rows]
