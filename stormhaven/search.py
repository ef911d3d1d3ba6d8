"""Query templates for the search endpoints.

Each template takes a `CompiledFilter` and returns a bounded, ordered
`Select`. Column maps tie predicate field names to table columns.
"""

from sqlalchemy import Select, select

from .filters import CompiledFilter
from .models import Disaster, DisasterType, Features, Property

SEARCH_ROW_LIMIT = 1000

PROPERTY_COLUMNS = {
    "property_id": Property.property_id,
    "state": Property.state,
    "county_name": Property.county_name,
    "status": Property.status,
    "price": Property.price,
    "bathrooms": Features.bathrooms,
    "bedrooms": Features.bedrooms,
    "acres": Features.acre_lot,
}

DISASTER_COLUMNS = {
    "disaster_id": Disaster.disaster_id,
    "disasternumber": Disaster.disasternumber,
    "type_code": DisasterType.type_code,
    "county_name": Disaster.county_name,
    "designateddate": Disaster.designateddate,
}


def property_search_query(filters: CompiledFilter) -> Select:
    """Properties joined with their features, ascending by property id."""
    return (
        select(
            Property.property_id,
            Property.county_name,
            Property.state,
            Property.price,
            Property.status,
            Features.bedrooms,
            Features.bathrooms,
            Features.acre_lot,
            Features.house_size,
        )
        .join(Features, Property.property_id == Features.property_id)
        .where(filters.where(PROPERTY_COLUMNS))
        .order_by(Property.property_id.asc())
        .limit(SEARCH_ROW_LIMIT)
    )


def disaster_search_query(filters: CompiledFilter) -> Select:
    """Disasters joined with their types, ascending by disaster number."""
    return (
        select(
            Disaster.disaster_id,
            Disaster.disasternumber,
            Disaster.designateddate,
            Disaster.closeoutdate,
            Disaster.county_name,
            DisasterType.type_code,
            DisasterType.type_description,
        )
        .join(DisasterType, Disaster.disaster_id == DisasterType.disaster_id)
        .where(filters.where(DISASTER_COLUMNS))
        .order_by(
            Disaster.disasternumber.asc(),
            Disaster.disaster_id.asc(),
            DisasterType.type_code.asc(),
        )
        .limit(SEARCH_ROW_LIMIT)
    )


def property_disasters_query(filters: CompiledFilter) -> Select:
    """Disasters recorded for the city a property lies in, newest first.

    Properties and disasters are matched on the location name string
    (`property.county_name = disaster.county_name`), so spelling or casing
    differences between the two tables will not join.
    """
    return (
        select(
            Disaster.disaster_id,
            Disaster.disasternumber,
            Disaster.designateddate,
            Disaster.closeoutdate,
            DisasterType.type_code,
            DisasterType.type_description,
        )
        .distinct()
        .select_from(Property)
        .join(Disaster, Property.county_name == Disaster.county_name)
        .join(DisasterType, Disaster.disaster_id == DisasterType.disaster_id)
        .where(filters.where({"property_id": Property.property_id}))
        .order_by(
            Disaster.designateddate.desc(),
            Disaster.disaster_id.asc(),
            DisasterType.type_code.asc(),
        )
        .limit(SEARCH_ROW_LIMIT)
    )
