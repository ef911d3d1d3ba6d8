"""FastAPI application for StormHaven property and disaster search."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

import logfire
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .analytics import run_analytics, utcnow
from .config import Settings, settings
from .database import QueryError, QueryResult, fetch_rows, get_db, init_db
from .filters import (
    FilterValidationError,
    compile_disaster_search,
    compile_property_disasters,
    compile_property_search,
)
from .schemas import (
    DisasterRow,
    DisasterSearchParams,
    DisasterTrendRow,
    ErrorResponse,
    FrequentDisasterRow,
    MostAffectedRow,
    PropertyDisasterRow,
    PropertyDisastersParams,
    PropertyRow,
    PropertySearchParams,
    RecentlyAffectedRow,
    SafestCityRow,
    SignificantDisasterRow,
    UnimpactedPropertyRow,
)
from .search import disaster_search_query, property_disasters_query, property_search_query

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Optionally create tables on startup."""
    if settings.create_tables:
        logger.info("Creating tables")
        init_db()
    yield


app = FastAPI(
    title="StormHaven API",
    description="Property listings cross-referenced with historical disaster designations",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure Logfire for observability (after app creation)
if settings.logfire_token:
    logfire.configure(token=settings.logfire_token)
    logfire.instrument_fastapi(app)

# The browser app is served from anywhere; there is no authentication
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "A parameter could not be parsed"},
    503: {"model": ErrorResponse, "description": "The database query failed"},
}


def get_settings() -> Settings:
    return settings


def get_clock() -> datetime:
    """Reference time for the windowed analytics; overridden in tests."""
    return utcnow()


@app.exception_handler(FilterValidationError)
async def filter_validation_error_handler(request: Request, exc: FilterValidationError):
    logger.info(f"Rejected {request.url.path}: {exc}")
    return JSONResponse(
        status_code=400,
        content={
            "error": "invalid_parameter",
            "field": exc.field,
            "value": exc.value,
            "detail": exc.detail,
        },
    )


def respond(result: QueryResult, config: Settings):
    """Turn a query result into the HTTP response.

    A failed query is a 503 unless the legacy empty-array fallback is on.
    """
    if isinstance(result, QueryError):
        if config.empty_on_error:
            return []
        return JSONResponse(
            status_code=503,
            content={"error": "query_failed", "detail": result.reason},
        )
    return result.rows


def analytics_response(name: str, db: Session, config: Settings, now: datetime):
    result = run_analytics(
        db,
        name,
        now=now,
        use_materialized_views=config.use_materialized_views,
    )
    return respond(result, config)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "StormHaven API"}


# =============================================================================
# Dashboard
# =============================================================================


@app.get(
    "/frequent-disaster-high-price-properties",
    response_model=list[FrequentDisasterRow],
    responses=ERROR_RESPONSES,
)
def get_frequent_disaster_high_price_properties(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
    now: datetime = Depends(get_clock),
):
    """Most frequent disaster types in cities whose average price exceeds $500,000."""
    return analytics_response("frequent-disaster-high-price-properties", db, config, now)


@app.get(
    "/recently-unimpacted-high-risk-areas",
    response_model=list[UnimpactedPropertyRow],
    responses=ERROR_RESPONSES,
)
def get_recently_unimpacted_high_risk_areas(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
    now: datetime = Depends(get_clock),
):
    """Properties in historically high-risk areas with no disaster in the past 5 years."""
    return analytics_response("recently-unimpacted-high-risk-areas", db, config, now)


@app.get(
    "/safest-cities-per-state",
    response_model=list[SafestCityRow],
    responses=ERROR_RESPONSES,
)
def get_safest_cities_per_state(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
    now: datetime = Depends(get_clock),
):
    """Cities with fewer disasters than the average city in their state."""
    return analytics_response("safest-cities-per-state", db, config, now)


@app.get(
    "/properties-with-significant-disasters",
    response_model=list[SignificantDisasterRow],
    responses=ERROR_RESPONSES,
)
def get_properties_with_significant_disasters(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
    now: datetime = Depends(get_clock),
):
    """Average prices in cities hit by at least two distinct disaster types."""
    return analytics_response("properties-with-significant-disasters", db, config, now)


@app.get(
    "/most-affected-properties",
    response_model=list[MostAffectedRow],
    responses=ERROR_RESPONSES,
)
def get_most_affected_properties(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
    now: datetime = Depends(get_clock),
):
    """The 20 locations with the most disaster-affected properties."""
    return analytics_response("most-affected-properties", db, config, now)


@app.get(
    "/affected-properties-past-two-years",
    response_model=list[RecentlyAffectedRow],
    responses=ERROR_RESPONSES,
)
def get_affected_properties_past_two_years(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
    now: datetime = Depends(get_clock),
):
    """Up to 100 properties hit by a disaster in the last 2 years, newest first."""
    return analytics_response("affected-properties-past-two-years", db, config, now)


# =============================================================================
# FindHouses / Favorites
# =============================================================================


@app.get(
    "/search_properties",
    response_model=list[PropertyRow],
    responses=ERROR_RESPONSES,
)
def search_properties(
    params: PropertySearchParams = Depends(),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Properties matching id, city, state and status within the numeric ranges.

    At most 1000 rows, ascending by property id.
    """
    filters = compile_property_search(params.model_dump())
    return respond(fetch_rows(db, property_search_query(filters), "search_properties"), config)


@app.get(
    "/get_disasters_for_property",
    response_model=list[PropertyDisasterRow],
    responses=ERROR_RESPONSES,
)
def get_disasters_for_property(
    params: PropertyDisastersParams = Depends(),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Disasters recorded for the property's city, newest first."""
    filters = compile_property_disasters(params.model_dump())
    return respond(
        fetch_rows(db, property_disasters_query(filters), "get_disasters_for_property"),
        config,
    )


# =============================================================================
# DisasterRisks
# =============================================================================


@app.get(
    "/search_disasters",
    response_model=list[DisasterRow],
    responses=ERROR_RESPONSES,
)
def search_disasters(
    params: DisasterSearchParams = Depends(),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Disasters matching id, number, type code and city within the date range.

    At most 1000 rows, ascending by disaster number.
    """
    filters = compile_disaster_search(params.model_dump())
    return respond(fetch_rows(db, disaster_search_query(filters), "search_disasters"), config)


@app.get(
    "/disaster-trends",
    response_model=list[DisasterTrendRow],
    responses=ERROR_RESPONSES,
)
def get_disaster_trends(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
    now: datetime = Depends(get_clock),
):
    """Disaster counts per year and type through 2024."""
    return analytics_response("disaster-trends", db, config, now)
