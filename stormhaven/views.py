"""PostgreSQL materialized views backing the dashboard analytics.

The view bodies are compiled from the same `Select` objects the API runs live,
so the materialized and on-demand paths cannot drift apart.
"""

import logging

from sqlalchemy import Engine, text
from sqlalchemy.dialects import postgresql

from .analytics import ANALYTICS, AnalyticsQuery, utcnow

logger = logging.getLogger(__name__)


def materialized_queries() -> list[AnalyticsQuery]:
    return [q for q in ANALYTICS.values() if q.materialized_view]


def view_body_sql(query: AnalyticsQuery) -> str:
    statement = query.build(utcnow())
    compiled = statement.compile(
        dialect=postgresql.dialect(),
        compile_kwargs={"literal_binds": True},
    )
    return str(compiled)


def create_view_sql(query: AnalyticsQuery) -> str:
    return f"CREATE MATERIALIZED VIEW IF NOT EXISTS {query.materialized_view} AS\n{view_body_sql(query)}"


def refresh_view_sql(query: AnalyticsQuery) -> str:
    return f"REFRESH MATERIALIZED VIEW {query.materialized_view}"


def drop_view_sql(query: AnalyticsQuery) -> str:
    return f"DROP MATERIALIZED VIEW IF EXISTS {query.materialized_view}"


def _run_all(engine: Engine, statements: list[tuple[str, str]]) -> list[str]:
    done = []
    with engine.begin() as conn:
        for view_name, sql in statements:
            logger.info(f"Executing for {view_name}: {sql.splitlines()[0]}")
            conn.execute(text(sql))
            done.append(view_name)
    return done


def create_views(engine: Engine) -> list[str]:
    """Create every missing materialized view. Returns the view names."""
    return _run_all(engine, [(q.materialized_view, create_view_sql(q)) for q in materialized_queries()])


def refresh_views(engine: Engine) -> list[str]:
    """Recompute every materialized view from the current tables."""
    return _run_all(engine, [(q.materialized_view, refresh_view_sql(q)) for q in materialized_queries()])


def drop_views(engine: Engine) -> list[str]:
    return _run_all(engine, [(q.materialized_view, drop_view_sql(q)) for q in materialized_queries()])
