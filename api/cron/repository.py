"""
Scheduled-task persistence (raw SQL).

Both statements are conditional, so running them again with nothing new to do
affects zero rows.
"""

from __future__ import annotations

from core import db

PUBLISH_DUE_ARTICLES_SQL = """
    UPDATE articles
    SET status = 'published',
        published_at = COALESCE(published_at, now()),
        updated_at = now()
    WHERE status = 'scheduled'
      AND scheduled_publish_at IS NOT NULL
      AND scheduled_publish_at <= now()
"""

DELETE_OLD_ACTIVITY_LOGS_SQL = """
    DELETE FROM activity_logs
    WHERE created_at < now() - make_interval(days => $1)
"""


async def publish_due_articles() -> int:
    result = await db.execute_write(PUBLISH_DUE_ARTICLES_SQL)
    return result.rows_affected


async def delete_activity_logs_older_than(days: int) -> int:
    result = await db.execute_write(DELETE_OLD_ACTIVITY_LOGS_SQL, days)
    return result.rows_affected
