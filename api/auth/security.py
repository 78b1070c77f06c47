"""
Password hashing for accounts created by the API itself (the seed admin).
"""

from __future__ import annotations

import bcrypt

from core import settings


def hash_password(plain_password: str, *, rounds: int | None = None) -> str:
    password = (plain_password or "").encode("utf-8")
    if not password:
        raise ValueError("Refusing to hash an empty password.")
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds())
    return bcrypt.hashpw(password, salt).decode("utf-8")
