"""
Schema creation (raw DDL).

Every statement is `CREATE ... IF NOT EXISTS`, so `ensure_schema()` can run on
any number of processes at once. There are no migrations here, only additive
creation.
"""

from __future__ import annotations

import logging
import re

from core import db
from core.errors import DUPLICATE_OBJECT, DUPLICATE_TABLE, UNIQUE_VIOLATION, QueryError, SchemaError

logger = logging.getLogger(__name__)

# Two sessions racing on the same CREATE ... IF NOT EXISTS can still collide in
# the catalog; PostgreSQL reports that as one of these.
ALREADY_EXISTS_SQLSTATES = frozenset({DUPLICATE_TABLE, DUPLICATE_OBJECT, UNIQUE_VIOLATION})

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS roles (
        id BIGSERIAL PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        description TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS permissions (
        id BIGSERIAL PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        resource TEXT NOT NULL,
        action TEXT NOT NULL,
        description TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS role_permissions (
        role_id BIGINT NOT NULL REFERENCES roles (id) ON DELETE CASCADE,
        permission_id BIGINT NOT NULL REFERENCES permissions (id) ON DELETE CASCADE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        PRIMARY KEY (role_id, permission_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id BIGSERIAL PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        full_name TEXT,
        is_active BOOLEAN NOT NULL DEFAULT true,
        last_login_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_roles (
        user_id BIGINT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
        role_id BIGINT NOT NULL REFERENCES roles (id) ON DELETE CASCADE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        PRIMARY KEY (user_id, role_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id BIGSERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        description TEXT,
        parent_id BIGINT REFERENCES categories (id) ON DELETE SET NULL,
        display_order INTEGER NOT NULL DEFAULT 0,
        is_enabled BOOLEAN NOT NULL DEFAULT true,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS articles (
        id BIGSERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        summary TEXT,
        content TEXT NOT NULL DEFAULT '',
        featured_image TEXT,
        category_id BIGINT REFERENCES categories (id) ON DELETE SET NULL,
        author_id BIGINT REFERENCES users (id) ON DELETE SET NULL,
        status TEXT NOT NULL DEFAULT 'draft'
            CHECK (status IN ('draft', 'pending', 'scheduled', 'published', 'archived')),
        is_featured BOOLEAN NOT NULL DEFAULT false,
        is_breaking BOOLEAN NOT NULL DEFAULT false,
        view_count BIGINT NOT NULL DEFAULT 0,
        scheduled_publish_at TIMESTAMPTZ,
        published_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ads (
        id BIGSERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        image_url TEXT,
        link_url TEXT,
        placement TEXT NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT true,
        starts_at TIMESTAMPTZ,
        ends_at TIMESTAMPTZ,
        impressions BIGINT NOT NULL DEFAULT 0,
        clicks BIGINT NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS navigation_items (
        id BIGSERIAL PRIMARY KEY,
        label TEXT NOT NULL,
        url TEXT NOT NULL,
        parent_id BIGINT REFERENCES navigation_items (id) ON DELETE CASCADE,
        display_order INTEGER NOT NULL DEFAULT 0,
        is_enabled BOOLEAN NOT NULL DEFAULT true,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS comments (
        id BIGSERIAL PRIMARY KEY,
        article_id BIGINT NOT NULL REFERENCES articles (id) ON DELETE CASCADE,
        user_id BIGINT REFERENCES users (id) ON DELETE SET NULL,
        author_name TEXT,
        content TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'approved', 'rejected', 'spam')),
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT,
        type TEXT NOT NULL DEFAULT 'string',
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS activity_logs (
        id BIGSERIAL PRIMARY KEY,
        user_id BIGINT REFERENCES users (id) ON DELETE SET NULL,
        action TEXT NOT NULL,
        entity_type TEXT,
        entity_id BIGINT,
        details TEXT,
        ip_address TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_articles_status_scheduled ON articles (status, scheduled_publish_at)",
    "CREATE INDEX IF NOT EXISTS idx_articles_category ON articles (category_id)",
    "CREATE INDEX IF NOT EXISTS idx_comments_article ON comments (article_id)",
    "CREATE INDEX IF NOT EXISTS idx_activity_logs_created ON activity_logs (created_at)",
)

_OBJECT_NAME = re.compile(r"IF NOT EXISTS\s+(\w+)", re.IGNORECASE)


def object_name(statement: str) -> str:
    match = _OBJECT_NAME.search(statement)
    return match.group(1) if match else "?"


async def ensure_schema() -> None:
    """
    Create every table and index the application needs, skipping existing ones.
    """
    for statement in SCHEMA_STATEMENTS:
        name = object_name(statement)
        try:
            await db.execute(statement)
        except QueryError as exc:
            if exc.sqlstate in ALREADY_EXISTS_SQLSTATES:
                logger.info("schema_object_exists name=%s sqlstate=%s", name, exc.sqlstate)
                continue
            raise SchemaError(f"Failed to create {name}: {exc}") from exc
    logger.info("schema_ready objects=%s", len(SCHEMA_STATEMENTS))
