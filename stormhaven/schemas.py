"""Pydantic schemas for the StormHaven API.

Query parameter models keep every field as an optional raw string: parsing
and defaulting belong to the filter compiler, which reports bad values by
field name. Row models describe the JSON shape of each endpoint.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# =============================================================================
# Query parameters
# =============================================================================


class PropertySearchParams(BaseModel):
    """Filters for /search_properties. Blank or missing means unconstrained."""

    property_id: str | None = Field(default=None, description="Exact property id")
    county_name: str | None = Field(default=None, description="City name, partial and case-insensitive")
    state: str | None = Field(default=None, description="State, partial and case-insensitive")
    status: str | None = Field(default=None, description="for_sale or sold, partial and case-insensitive")
    price_low: str | None = Field(default=None, description="Minimum price, default 0")
    price_high: str | None = Field(default=None, description="Maximum price, default 10,000,000,000")
    bathrooms_low: str | None = Field(default=None, description="Minimum bathrooms, default 0")
    bathrooms_high: str | None = Field(default=None, description="Maximum bathrooms, default 100")
    bedrooms_low: str | None = Field(default=None, description="Minimum bedrooms, default 0")
    bedrooms_high: str | None = Field(default=None, description="Maximum bedrooms, default 1000")
    acres_low: str | None = Field(default=None, description="Minimum lot size in acres, default 0")
    acres_high: str | None = Field(default=None, description="Maximum lot size in acres, default 10000")


class PropertyDisastersParams(BaseModel):
    property_id: str | None = Field(default=None, description="Property whose city disasters to list")


class DisasterSearchParams(BaseModel):
    """Filters for /search_disasters. Blank or missing means unconstrained."""

    disaster_id: str | None = Field(default=None, description="Exact disaster id")
    disasternumber: str | None = Field(default=None, description="Exact FEMA disaster number")
    type_code: str | None = Field(default=None, description="Exact disaster type code, e.g. DR, EM, HM")
    county_name: str | None = Field(default=None, description="City name, partial and case-insensitive")
    designateddate_low: str | None = Field(
        default=None,
        description="Earliest designated date (ISO-8601). A bare date starts at 00:00",
    )
    designateddate_high: str | None = Field(
        default=None,
        description="Latest designated date (ISO-8601). A bare date ends at 23:59:59.999999",
    )


# =============================================================================
# Search rows
# =============================================================================


class PropertyRow(BaseModel):
    """A property joined with its features."""
    property_id: int
    county_name: str | None
    state: str | None
    price: float | None
    status: str | None
    bedrooms: int | None
    bathrooms: float | None
    acre_lot: float | None
    house_size: float | None = None


class DisasterRow(BaseModel):
    """A disaster joined with one of its types."""
    disaster_id: int
    disasternumber: int
    designateddate: datetime
    closeoutdate: datetime | None
    county_name: str | None
    type_code: str
    type_description: str | None


class PropertyDisasterRow(BaseModel):
    disaster_id: int
    disasternumber: int
    designateddate: datetime
    closeoutdate: datetime | None
    type_code: str
    type_description: str | None


# =============================================================================
# Analytics rows
# =============================================================================


class FrequentDisasterRow(BaseModel):
    type_code: str
    disaster_count: int


class UnimpactedPropertyRow(BaseModel):
    property_id: int
    city: str | None
    state: str | None


class SafestCityRow(BaseModel):
    row_index: int = Field(description="1-based row key, no meaning beyond ordering")
    county_name: str | None
    state: str | None
    disaster_count: int


class SignificantDisasterRow(BaseModel):
    row_index: int = Field(description="1-based row key, no meaning beyond ordering")
    city: str | None
    state: str | None
    average_price: float | None


class MostAffectedRow(BaseModel):
    city: str | None
    state: str | None
    county_name: str | None
    affected_properties: int


class RecentlyAffectedRow(BaseModel):
    property_id: int
    price: float | None
    status: str | None
    city: str | None
    state: str | None
    designateddate: datetime


class DisasterTrendRow(BaseModel):
    index: int = Field(description="1-based row key, no meaning beyond ordering")
    year: int
    type_description: str | None
    disaster_count: int


# =============================================================================
# Errors
# =============================================================================


class ErrorResponse(BaseModel):
    """Body of 4xx/5xx responses."""
    error: str = Field(description="invalid_parameter or query_failed")
    detail: str
    field: str | None = None
    value: str | None = None
