"""
Reference data seeding (raw SQL).

`seed_if_empty()` runs on every cold start but writes only while the `users`
table is empty. It is deliberately not one transaction: each insert is
individually idempotent, so a seed interrupted halfway is finished by the next
process that finds no user.

The admin user insert is what closes that gate, so all data that does not
need the user id (roles, permissions, categories, settings) is written before
it. The two writes that follow it (the admin's `user_roles` link and the
super-admin `role_permissions` grants) are not re-attempted if the process dies
after the user row is committed and before they finish; that state has to be
repaired by hand.

Two processes can both see an empty `users` table. Every insert therefore uses
`ON CONFLICT DO NOTHING`, and a unique violation that still surfaces (e.g. a
constraint the clause does not cover) is logged and skipped for that row only.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from auth import security
from core import db, settings
from core.errors import UniqueViolationError

logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE = "super_admin"


@dataclass(frozen=True)
class RoleSeed:
    name: str
    description: str


@dataclass(frozen=True)
class PermissionSeed:
    resource: str
    action: str
    description: str

    @property
    def name(self) -> str:
        return f"{self.resource}.{self.action}"


@dataclass(frozen=True)
class CategorySeed:
    name: str
    slug: str
    description: str


@dataclass(frozen=True)
class SettingSeed:
    key: str
    value: str
    type: str = "string"


DEFAULT_ROLES: tuple[RoleSeed, ...] = (
    RoleSeed(SUPER_ADMIN_ROLE, "Super Administrator with full system access"),
    RoleSeed("admin", "Administrator with management access"),
    RoleSeed("editor", "Editor who can review and publish articles"),
    RoleSeed("journalist", "Journalist/Reporter who creates content"),
    RoleSeed("contributor", "Contributor/Freelancer with limited access"),
    RoleSeed("moderator", "Moderator who manages comments and user content"),
    RoleSeed("registered_user", "Registered user who can comment"),
)

DEFAULT_PERMISSIONS: tuple[PermissionSeed, ...] = (
    PermissionSeed("article", "create", "Create articles"),
    PermissionSeed("article", "read", "Read articles"),
    PermissionSeed("article", "update", "Update articles"),
    PermissionSeed("article", "delete", "Delete articles"),
    PermissionSeed("article", "publish", "Publish articles"),
    PermissionSeed("article", "approve", "Approve articles"),
    PermissionSeed("user", "create", "Create users"),
    PermissionSeed("user", "read", "Read user data"),
    PermissionSeed("user", "update", "Update users"),
    PermissionSeed("user", "delete", "Delete users"),
    PermissionSeed("category", "manage", "Manage categories"),
    PermissionSeed("ads", "manage", "Manage advertisements"),
    PermissionSeed("media", "upload", "Upload media"),
    PermissionSeed("media", "manage", "Manage media library"),
    PermissionSeed("comment", "moderate", "Moderate comments"),
    PermissionSeed("system", "settings", "Manage system settings"),
    PermissionSeed("system", "analytics", "View analytics"),
)

DEFAULT_CATEGORIES: tuple[CategorySeed, ...] = (
    CategorySeed("Local News", "local-news", "News from the local area"),
    CategorySeed("National", "national", "National news"),
    CategorySeed("International", "international", "International news"),
    CategorySeed("Politics", "politics", "Political news and analysis"),
    CategorySeed("Business", "business", "Business and economy news"),
    CategorySeed("Sports", "sports", "Sports news and updates"),
    CategorySeed("Entertainment", "entertainment", "Entertainment and culture"),
    CategorySeed("Technology", "technology", "Technology and innovation"),
    CategorySeed("Health", "health", "Health and wellness"),
    CategorySeed("Education", "education", "Education news"),
)

DEFAULT_SETTINGS: tuple[SettingSeed, ...] = (
    SettingSeed("org_name", "News Portal"),
    SettingSeed("org_short_name", "news"),
    SettingSeed("site_title", "News Portal - Local News"),
    SettingSeed("site_description", "Local news and analysis"),
    SettingSeed("maintenance_mode", "false", "boolean"),
    SettingSeed("allow_comments", "true", "boolean"),
    SettingSeed("allow_registration", "true", "boolean"),
)

SELECT_ANY_USER_SQL = "SELECT id FROM users LIMIT 1"

INSERT_ROLE_SQL = """
    INSERT INTO roles (name, description)
    VALUES ($1, $2)
    ON CONFLICT DO NOTHING
"""

INSERT_PERMISSION_SQL = """
    INSERT INTO permissions (name, resource, action, description)
    VALUES ($1, $2, $3, $4)
    ON CONFLICT DO NOTHING
"""

INSERT_USER_SQL = """
    INSERT INTO users (username, email, password_hash, full_name, is_active)
    VALUES ($1, $2, $3, $4, $5)
    ON CONFLICT DO NOTHING
    RETURNING id
"""

SELECT_USER_BY_USERNAME_SQL = "SELECT id FROM users WHERE username = $1"

SELECT_ROLE_BY_NAME_SQL = "SELECT id FROM roles WHERE name = $1"

INSERT_USER_ROLE_SQL = """
    INSERT INTO user_roles (user_id, role_id)
    VALUES ($1, $2)
    ON CONFLICT DO NOTHING
"""

SELECT_PERMISSION_IDS_SQL = "SELECT id FROM permissions ORDER BY id"

INSERT_ROLE_PERMISSION_SQL = """
    INSERT INTO role_permissions (role_id, permission_id)
    VALUES ($1, $2)
    ON CONFLICT DO NOTHING
"""

INSERT_CATEGORY_SQL = """
    INSERT INTO categories (name, slug, description, display_order, is_enabled)
    VALUES ($1, $2, $3, $4, $5)
    ON CONFLICT DO NOTHING
"""

INSERT_SETTING_SQL = """
    INSERT INTO settings (key, value, type)
    VALUES ($1, $2, $3)
    ON CONFLICT DO NOTHING
"""


@contextmanager
def _tolerate_conflict(table: str, key: Any) -> Iterator[None]:
    """
    Swallow a unique violation for one row; anything else propagates.
    """
    try:
        yield
    except UniqueViolationError as exc:
        logger.info("seed_conflict_ignored table=%s key=%s sqlstate=%s", table, key, exc.sqlstate)


async def _insert_many(table: str, sql: str, rows: list[tuple[Any, ...]]) -> int:
    inserted = 0
    for args in rows:
        with _tolerate_conflict(table, args[0]):
            result = await db.execute_write(sql, *args)
            inserted += result.rows_affected
    return inserted


async def _seed_roles() -> int:
    return await _insert_many(
        "roles",
        INSERT_ROLE_SQL,
        [(role.name, role.description) for role in DEFAULT_ROLES],
    )


async def _seed_permissions() -> int:
    return await _insert_many(
        "permissions",
        INSERT_PERMISSION_SQL,
        [(p.name, p.resource, p.action, p.description) for p in DEFAULT_PERMISSIONS],
    )


async def _seed_admin_user() -> int:
    username = settings.seed_admin_username()
    password = settings.seed_admin_password()
    if password == settings.DEFAULT_ADMIN_PASSWORD:
        logger.warning("seed_admin_default_password username=%s (set SEED_ADMIN_PASSWORD)", username)

    password_hash = security.hash_password(password)
    user_id: int | None = None
    with _tolerate_conflict("users", username):
        result = await db.execute_write(
            INSERT_USER_SQL,
            username,
            settings.seed_admin_email(),
            password_hash,
            "System Administrator",
            True,
            returning=True,
        )
        user_id = result.inserted_id

    if user_id is None:
        # A sibling process created it first.
        row = await db.fetch_one(SELECT_USER_BY_USERNAME_SQL, username)
        if row is None:
            raise RuntimeError(f"Seed user {username!r} was neither inserted nor found.")
        user_id = int(row["id"])
    else:
        logger.info("seed_admin_created username=%s user_id=%s", username, user_id)
    return user_id


async def _super_admin_role_id() -> int:
    row = await db.fetch_one(SELECT_ROLE_BY_NAME_SQL, SUPER_ADMIN_ROLE)
    if row is None:
        raise RuntimeError(f"Role {SUPER_ADMIN_ROLE!r} is missing after seeding roles.")
    return int(row["id"])


async def _link_user_role(user_id: int, role_id: int) -> None:
    with _tolerate_conflict("user_roles", user_id):
        await db.execute_write(INSERT_USER_ROLE_SQL, user_id, role_id)


async def _grant_all_permissions(role_id: int) -> int:
    permissions = await db.fetch_all(SELECT_PERMISSION_IDS_SQL)
    return await _insert_many(
        "role_permissions",
        INSERT_ROLE_PERMISSION_SQL,
        [(role_id, int(row["id"])) for row in permissions],
    )


async def _seed_categories() -> int:
    return await _insert_many(
        "categories",
        INSERT_CATEGORY_SQL,
        [(c.name, c.slug, c.description, i, True) for i, c in enumerate(DEFAULT_CATEGORIES, start=1)],
    )


async def _seed_settings() -> int:
    return await _insert_many(
        "settings",
        INSERT_SETTING_SQL,
        [(s.key, s.value, s.type) for s in DEFAULT_SETTINGS],
    )


async def seed_if_empty() -> bool:
    """
    Insert reference data unless any user already exists.

    Returns True when this call went through the insert sequence, False when
    the existing-user check short-circuited it.
    """
    existing = await db.fetch_one(SELECT_ANY_USER_SQL)
    if existing is not None:
        logger.info("seed_skipped reason=user_exists")
        return False

    logger.info("seed_started")
    roles = await _seed_roles()
    permissions = await _seed_permissions()
    categories = await _seed_categories()
    settings_rows = await _seed_settings()
    # Everything above is retried by the next call if this one dies; the
    # user insert closes the existing-user gate, so it goes as late as possible.
    user_id = await _seed_admin_user()
    role_id = await _super_admin_role_id()
    await _link_user_role(user_id, role_id)
    grants = await _grant_all_permissions(role_id)
    logger.info(
        "seed_complete roles=%s permissions=%s grants=%s categories=%s settings=%s",
        roles,
        permissions,
        grants,
        categories,
        settings_rows,
    )
    return True
