"""
Guards for scheduled-task routes.
"""

from __future__ import annotations

import secrets

from fastapi import Header

from bootstrap import coordinator
from core import settings
from core.errors import UnauthorizedError


def _presented_secret(x_cron_secret: str | None, authorization: str | None) -> str:
    direct = (x_cron_secret or "").strip()
    if direct:
        return direct

    # Hosted schedulers send `Authorization: Bearer <secret>`.
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) == 2 and parts[0].strip().lower() == "bearer":
        return parts[1].strip()
    return ""


def check_cron_secret(presented: str) -> None:
    expected = settings.cron_secret()
    if not expected:
        raise UnauthorizedError("Scheduled tasks are disabled: CRON_SECRET is not set.")
    if not presented or not secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        raise UnauthorizedError("Invalid cron secret.")


async def verify_cron_secret(
    x_cron_secret: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> None:
    check_cron_secret(_presented_secret(x_cron_secret, authorization))


async def require_ready() -> None:
    await coordinator.ensure_ready()
