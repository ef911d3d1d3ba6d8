"""Dashboard analytics catalog.

Every entry is a parameterless aggregate over the live tables, built as a
SQLAlchemy `Select` so that it runs on PostgreSQL in production and on SQLite
in tests. Entries without a time window can also be served from a
PostgreSQL materialized view (see `views.py`).
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import (
    Float,
    Integer,
    Select,
    and_,
    cast,
    column,
    distinct,
    exists,
    extract,
    func,
    select,
    table,
)
from sqlalchemy.orm import Session

from .database import QueryOk, QueryResult, fetch_rows
from .models import Disaster, DisasterType, Located, Property

logger = logging.getLogger(__name__)

HIGH_PRICE_THRESHOLD = 500_000
HIGH_RISK_TYPE_CODES = ("HM",)  # hazard mitigation designations
MIN_DISTINCT_DISASTER_TYPES = 2
MOST_AFFECTED_LIMIT = 20
RECENTLY_AFFECTED_LIMIT = 100
RECENTLY_AFFECTED_YEARS = 2
UNIMPACTED_YEARS = 5
TRENDS_MAX_YEAR = 2024


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def years_before(moment: datetime, years: int) -> datetime:
    """Same calendar instant `years` earlier; Feb 29 falls back to Feb 28."""
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        return moment.replace(year=moment.year - years, day=28)


# =============================================================================
# Query builders
# =============================================================================


def frequent_disaster_high_price(now: datetime) -> Select:
    """Disaster counts by type code in cities averaging over $500k."""
    located_properties = (
        select(Located.property_id, Located.city, Located.state)
        .distinct()
        .subquery("located_properties")
    )
    high_price = (
        select(located_properties.c.city, located_properties.c.state)
        .join(Property, Property.property_id == located_properties.c.property_id)
        .group_by(located_properties.c.city, located_properties.c.state)
        .having(func.avg(Property.price) > HIGH_PRICE_THRESHOLD)
        .subquery("high_price_locations")
    )
    disaster_count = func.count(distinct(Located.disaster_id)).label("disaster_count")
    return (
        select(DisasterType.type_code, disaster_count)
        .select_from(Located)
        .join(
            high_price,
            and_(Located.city == high_price.c.city, Located.state == high_price.c.state),
        )
        .join(DisasterType, DisasterType.disaster_id == Located.disaster_id)
        .group_by(DisasterType.type_code)
        .order_by(disaster_count.desc(), DisasterType.type_code)
    )


def recently_unimpacted_high_risk_areas(now: datetime) -> Select:
    """Properties in historically high-risk cities with no disaster in 5 years.

    "No disaster" uses the same city-name association as
    /get_disasters_for_property, so the two endpoints agree.
    """
    high_risk = (
        select(Located.city, Located.state)
        .join(DisasterType, DisasterType.disaster_id == Located.disaster_id)
        .where(DisasterType.type_code.in_(HIGH_RISK_TYPE_CODES))
        .distinct()
        .subquery("high_risk_locations")
    )
    recently_hit = exists().where(
        Disaster.county_name == Property.county_name,
        Disaster.designateddate >= years_before(now, UNIMPACTED_YEARS),
    )
    return (
        select(
            Property.property_id,
            Property.county_name.label("city"),
            Property.state,
        )
        .join(
            high_risk,
            and_(
                Property.county_name == high_risk.c.city,
                Property.state == high_risk.c.state,
            ),
        )
        .where(~recently_hit)
        .order_by(Property.property_id)
    )


def safest_cities_per_state(now: datetime) -> Select:
    """Cities hit by fewer disasters than their state's per-city average."""
    city_counts = (
        select(
            Located.city.label("county_name"),
            Located.state,
            func.count(distinct(Located.disaster_id)).label("disaster_count"),
        )
        .group_by(Located.city, Located.state)
        .subquery("city_counts")
    )
    state_averages = (
        select(
            city_counts.c.state,
            func.avg(city_counts.c.disaster_count).label("average_count"),
        )
        .group_by(city_counts.c.state)
        .subquery("state_averages")
    )
    return (
        select(city_counts.c.county_name, city_counts.c.state, city_counts.c.disaster_count)
        .select_from(city_counts)
        .join(state_averages, state_averages.c.state == city_counts.c.state)
        .where(city_counts.c.disaster_count < state_averages.c.average_count)
        .order_by(
            city_counts.c.state,
            city_counts.c.disaster_count,
            city_counts.c.county_name,
        )
    )


def properties_with_significant_disasters(now: datetime) -> Select:
    """Average property price in cities hit by at least two disaster types."""
    significant = (
        select(Located.city, Located.state)
        .join(DisasterType, DisasterType.disaster_id == Located.disaster_id)
        .group_by(Located.city, Located.state)
        .having(func.count(distinct(DisasterType.type_code)) >= MIN_DISTINCT_DISASTER_TYPES)
        .subquery("significant_locations")
    )
    average_price = func.round(func.avg(Property.price), 2, type_=Float).label("average_price")
    return (
        select(Property.county_name.label("city"), Property.state, average_price)
        .join(
            significant,
            and_(
                Property.county_name == significant.c.city,
                Property.state == significant.c.state,
            ),
        )
        .group_by(Property.county_name, Property.state)
        .order_by(average_price.desc(), Property.county_name)
    )


def most_affected_properties(now: datetime) -> Select:
    """Top 20 locations by number of distinct affected properties."""
    affected = func.count(distinct(Located.property_id)).label("affected_properties")
    return (
        select(Located.city, Located.state, Disaster.county_name, affected)
        .join(Disaster, Disaster.disaster_id == Located.disaster_id)
        .group_by(Located.city, Located.state, Disaster.county_name)
        .order_by(affected.desc(), Located.city, Located.state)
        .limit(MOST_AFFECTED_LIMIT)
    )


def affected_properties_past_two_years(now: datetime) -> Select:
    """Properties hit by a disaster designated in the last two years."""
    return (
        select(
            Property.property_id,
            Property.price,
            Property.status,
            Located.city,
            Located.state,
            Disaster.designateddate,
        )
        .distinct()
        .join(Located, Property.property_id == Located.property_id)
        .join(Disaster, Located.disaster_id == Disaster.disaster_id)
        .where(Disaster.designateddate >= years_before(now, RECENTLY_AFFECTED_YEARS))
        .order_by(Disaster.designateddate.desc(), Property.property_id)
        .limit(RECENTLY_AFFECTED_LIMIT)
    )


def disaster_trends(now: datetime) -> Select:
    """Disaster counts per year and type, most recent year first."""
    year = cast(extract("year", Disaster.designateddate), Integer).label("year")
    disaster_count = func.count(Disaster.disaster_id).label("disaster_count")
    return (
        select(year, DisasterType.type_description, disaster_count)
        .join(DisasterType, Disaster.disaster_id == DisasterType.disaster_id)
        .where(year <= TRENDS_MAX_YEAR)
        .group_by(year, DisasterType.type_description)
        .order_by(year.desc(), disaster_count.desc(), DisasterType.type_description)
    )


# =============================================================================
# Catalog
# =============================================================================


@dataclass(frozen=True)
class AnalyticsQuery:
    """A named dashboard query.

    `index_column`, when set, is prepended to every row as a 1-based position
    in the ordered result. It only gives the UI a stable row key.
    `materialized_view` names the PostgreSQL view that can serve the query;
    `view_order` is the (column, descending) ordering to apply when reading it.
    """

    name: str
    title: str
    build: Callable[[datetime], Select]
    index_column: str | None = None
    materialized_view: str | None = None
    view_order: tuple[tuple[str, bool], ...] = ()


ANALYTICS: dict[str, AnalyticsQuery] = {
    q.name: q
    for q in (
        AnalyticsQuery(
            name="frequent-disaster-high-price-properties",
            title="Frequent Disasters for High Price Properties",
            build=frequent_disaster_high_price,
            materialized_view="view_frequent_disaster_high_price",
            view_order=(("disaster_count", True), ("type_code", False)),
        ),
        AnalyticsQuery(
            name="recently-unimpacted-high-risk-areas",
            title="Properties w/ No Disaster in High Risk Areas",
            build=recently_unimpacted_high_risk_areas,
        ),
        AnalyticsQuery(
            name="safest-cities-per-state",
            title="Safest Cities per State",
            build=safest_cities_per_state,
            index_column="row_index",
            materialized_view="view_safest_cities_per_state",
            view_order=(("state", False), ("disaster_count", False), ("county_name", False)),
        ),
        AnalyticsQuery(
            name="properties-with-significant-disasters",
            title="Properties with Significant Disaster Types",
            build=properties_with_significant_disasters,
            index_column="row_index",
            materialized_view="view_properties_with_significant_disaster_type",
            view_order=(("average_price", True), ("city", False)),
        ),
        AnalyticsQuery(
            name="most-affected-properties",
            title="20 Most Disaster-Affected Locations",
            build=most_affected_properties,
            materialized_view="mv_affected_properties",
            view_order=(("affected_properties", True), ("city", False), ("state", False)),
        ),
        AnalyticsQuery(
            name="affected-properties-past-two-years",
            title="Affected in Past 2 Years",
            build=affected_properties_past_two_years,
        ),
        AnalyticsQuery(
            name="disaster-trends",
            title="Disaster Trends",
            build=disaster_trends,
            index_column="index",
        ),
    )
}


def view_query(query: AnalyticsQuery, now: datetime) -> Select:
    """Select the columns of `query` from its materialized view."""
    columns = [c.name for c in query.build(now).selected_columns]
    view = table(query.materialized_view, *(column(name) for name in columns))
    order = [view.c[name].desc() if descending else view.c[name] for name, descending in query.view_order]
    return select(*view.c).order_by(*order)


def add_row_index(rows: list[dict], index_column: str) -> list[dict]:
    return [{index_column: position, **row} for position, row in enumerate(rows, start=1)]


def run_analytics(
    db: Session,
    name: str,
    now: datetime | None = None,
    use_materialized_views: bool = False,
) -> QueryResult:
    """Run the catalog entry `name` against live data.

    Raises KeyError for names outside the catalog.
    """
    query = ANALYTICS[name]
    now = now or utcnow()

    if use_materialized_views and query.materialized_view:
        statement = view_query(query, now)
    else:
        statement = query.build(now)

    result = fetch_rows(db, statement, label=name)
    if isinstance(result, QueryOk) and query.index_column:
        return QueryOk(rows=add_row_index(result.rows, query.index_column))
    return result
