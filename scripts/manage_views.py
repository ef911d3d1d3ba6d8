"""Manage the PostgreSQL materialized views behind the dashboard analytics.

Usage:
    python scripts/manage_views.py create    # CREATE MATERIALIZED VIEW IF NOT EXISTS ...
    python scripts/manage_views.py refresh   # REFRESH after loading new data
    python scripts/manage_views.py drop
    python scripts/manage_views.py show      # Print the SQL without running it

Set STORMHAVEN_USE_MATERIALIZED_VIEWS=true for the API to read from them.
"""

import argparse
import logging

from stormhaven.database import engine
from stormhaven.views import (
    create_view_sql,
    create_views,
    drop_views,
    materialized_queries,
    refresh_views,
)


def show_views() -> None:
    for query in materialized_queries():
        print(f"-- {query.name}: {query.title}")
        print(create_view_sql(query) + ";\n")


def main():
    parser = argparse.ArgumentParser(description="Manage StormHaven materialized views")
    parser.add_argument("action", choices=["create", "refresh", "drop", "show"])
    parser.add_argument("-v", "--verbose", action="store_true", help="Log each statement")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    if args.action == "show":
        show_views()
        return

    action = {"create": create_views, "refresh": refresh_views, "drop": drop_views}[args.action]
    print(f"=== {args.action.title()} materialized views ===")
    for view_name in action(engine):
        print(f"  {view_name}")


if __name__ == "__main__":
    main()
