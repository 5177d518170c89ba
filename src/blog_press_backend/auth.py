
import hashlib
import hmac
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

PBKDF2_ITERATIONS = 120_000


@dataclass
class SessionRecord:
    user_id: int
    username: str
    expires_at: datetime


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    """Salted PBKDF2-SHA256 hash encoded as ``pbkdf2_sha256$iterations$salt$digest``."""
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), bytes.fromhex(salt_hex), int(iterations))
    return hmac.compare_digest(digest.hex(), digest_hex)


class AuthManager:
    """
    Manages admin users and login sessions using a local SQLite database.

    Session tokens are handed to the client once; only their SHA-256 hash
    is stored.
    """

    def __init__(self, db_path: str = "data/blog.db", session_ttl_hours: int = 24):
        self.db_path = Path(db_path)
        self.session_ttl = timedelta(hours=session_ttl_hours)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize the database schema if it doesn't exist."""
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT UNIQUE NOT NULL,
                    password TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    token_hash TEXT PRIMARY KEY,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def _hash_token(self, token: str) -> str:
        """SHA-256 hash of the session token."""
        return hashlib.sha256(token.encode()).hexdigest()

    def ensure_user(self, username: str, password: str) -> None:
        """Create the user unless one with this username already exists."""
        with self._get_conn() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO users (username, password) VALUES (?, ?)",
                (username, hash_password(password)),
            )
            conn.commit()

    def authenticate(self, username: str, password: str) -> Optional[int]:
        """Return the user id if the credentials match."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT id, password FROM users WHERE username = ?", (username,)
            ).fetchone()
        if row and verify_password(password, row["password"]):
            return row["id"]
        return None

    def create_session(self, user_id: int) -> str:
        """
        Open a session for a user.

        Returns:
            The raw session token. It is shown ONLY ONCE here.
        """
        token = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO sessions (token_hash, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
                (self._hash_token(token), user_id, now.isoformat(), (now + self.session_ttl).isoformat()),
            )
            conn.commit()
        return token

    def validate_session(self, token: Optional[str]) -> Optional[SessionRecord]:
        if not token:
            return None

        with self._get_conn() as conn:
            row = conn.execute(
                """
                SELECT s.user_id, s.expires_at, u.username
                FROM sessions s JOIN users u ON u.id = s.user_id
                WHERE s.token_hash = ?
                """,
                (self._hash_token(token),),
            ).fetchone()

        if not row:
            return None
        expires_at = datetime.fromisoformat(row["expires_at"])
        if expires_at <= datetime.now(timezone.utc):
            self.revoke_session(token)
            return None
        return SessionRecord(user_id=row["user_id"], username=row["username"], expires_at=expires_at)

    def revoke_session(self, token: Optional[str]) -> bool:
        if not token:
            return False
        with self._get_conn() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE token_hash = ?", (self._hash_token(token),))
            conn.commit()
            return cursor.rowcount > 0
