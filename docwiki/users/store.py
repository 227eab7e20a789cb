"""User directory — names and avatars shown next to pages and comments."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..db.migrations import get_db


@dataclass
class User:
    id: str = ""
    name: str = ""
    email: str = ""
    avatar_url: str = ""
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar_url": self.avatar_url,
            "created_at": self.created_at,
        }


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"] or "",
        avatar_url=row["avatar_url"] or "",
        created_at=row["created_at"] or "",
    )


class UserStore:
    def __init__(self, db_path: Path | str):
        self._db_path = Path(db_path)

    def create_user(self, name: str, email: str = "", avatar_url: str = "", id: str = "") -> User:
        user = User(
            id=id or str(uuid.uuid4()),
            name=name,
            email=email,
            avatar_url=avatar_url,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        db = get_db(self._db_path)
        try:
            db.execute(
                "INSERT INTO users (id, name, email, avatar_url, created_at) VALUES (?,?,?,?,?)",
                (user.id, user.name, user.email, user.avatar_url, user.created_at),
            )
            db.commit()
        finally:
            db.close()
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        db = get_db(self._db_path)
        try:
            row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return _row_to_user(row) if row else None
        finally:
            db.close()

    def get_users(self, user_ids) -> dict[str, User]:
        """Batch lookup, keyed by id. Unknown ids are simply absent."""
        ids = sorted({u for u in user_ids if u})
        if not ids:
            return {}
        db = get_db(self._db_path)
        try:
            rows = db.execute(
                f"SELECT * FROM users WHERE id IN ({','.join('?' * len(ids))})", ids
            ).fetchall()
            return {r["id"]: _row_to_user(r) for r in rows}
        finally:
            db.close()
