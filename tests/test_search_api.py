from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from conftest import make_engine
from stormhaven.config import Settings
from stormhaven.database import get_db
from stormhaven.main import app, get_settings
from stormhaven.models import Disaster, DisasterType, Features, Property
from stormhaven.search import SEARCH_ROW_LIMIT


def ids(rows, key="property_id"):
    return [row[key] for row in rows]


def add_disaster(db, disaster_id, number, designated, city, type_code="DR"):
    db.add(Disaster(disaster_id=disaster_id, disasternumber=number, designateddate=designated, county_name=city))
    db.add(DisasterType(disaster_id=disaster_id, type_code=type_code, type_description="Major Disaster Declaration"))


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


class TestSearchProperties:
    def test_no_filters_returns_everything_in_id_order(self, client):
        response = client.get("/search_properties")
        assert response.status_code == 200
        assert ids(response.json()) == list(range(1, 13))

    def test_state_and_price_range(self, client):
        response = client.get(
            "/search_properties",
            params={"state": "CA", "price_low": "100000", "price_high": "300000"},
        )
        assert response.status_code == 200
        rows = response.json()
        assert ids(rows) == [4, 5, 11]
        assert all(100_000 <= row["price"] <= 300_000 for row in rows)

    def test_city_substring_is_case_insensitive(self, client):
        rows = client.get("/search_properties", params={"county_name": "spring"}).json()
        assert ids(rows) == [1, 2, 8]
        assert {row["county_name"] for row in rows} == {"Springfield", "West Springfield"}

    def test_status_substring(self, client):
        assert ids(client.get("/search_properties", params={"status": "SOLD"}).json()) == [2, 5, 7]

    def test_bedrooms_lower_bound_only(self, client):
        assert ids(client.get("/search_properties", params={"bedrooms_low": "4"}).json()) == [3, 7, 9]

    def test_exact_property_id(self, client):
        rows = client.get("/search_properties", params={"property_id": "7"}).json()
        assert len(rows) == 1
        row = rows[0]
        assert row["property_id"] == 7
        assert row["county_name"] == "Los Angeles"
        assert row["bedrooms"] == 5
        assert row["acre_lot"] == 0.5

    def test_blank_params_are_unconstrained(self, client):
        response = client.get(
            "/search_properties",
            params={"property_id": "", "state": "", "price_low": "", "acres_high": " "},
        )
        assert response.status_code == 200
        assert len(response.json()) == 12

    def test_like_wildcards_match_literally(self, client):
        assert client.get("/search_properties", params={"county_name": "%"}).json() == []
        assert client.get("/search_properties", params={"status": "for%sale"}).json() == []
        assert len(client.get("/search_properties", params={"status": "for_sale"}).json()) == 9

    def test_inverted_range_is_empty(self, client):
        response = client.get("/search_properties", params={"price_low": "500000", "price_high": "100"})
        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.parametrize(
        "params, field",
        [
            ({"property_id": "abc"}, "property_id"),
            ({"price_low": "cheap"}, "price_low"),
            ({"bathrooms_high": "NaN"}, "bathrooms_high"),
        ],
    )
    def test_unparseable_values_are_rejected(self, client, params, field):
        response = client.get("/search_properties", params=params)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_parameter"
        assert body["field"] == field
        assert body["value"] == next(iter(params.values()))

    def test_repeated_requests_are_identical(self, client):
        params = {"state": "ca", "bedrooms_high": "3"}
        first = client.get("/search_properties", params=params).json()
        second = client.get("/search_properties", params=params).json()
        assert first == second

    def test_result_is_capped(self, client, db):
        for pid in range(1000, 2100):
            db.add(Property(property_id=pid, county_name="Bulk", state="NV", price=1, status="sold"))
            db.add(Features(property_id=pid, bedrooms=1, bathrooms=1, acre_lot=0.1))
        db.commit()

        rows = client.get("/search_properties", params={"state": "NV"}).json()
        assert len(rows) == SEARCH_ROW_LIMIT
        assert ids(rows) == list(range(1000, 1000 + SEARCH_ROW_LIMIT))


class TestDisastersForProperty:
    def test_newest_first(self, client):
        rows = client.get("/get_disasters_for_property", params={"property_id": "4"}).json()
        assert ids(rows, "disaster_id") == [112, 109]
        assert rows[0]["designateddate"].startswith("2024-03-03")

    def test_city_name_must_match_exactly(self, client):
        # West Springfield disasters do not belong to Springfield
        rows = client.get("/get_disasters_for_property", params={"property_id": "1"}).json()
        assert ids(rows, "disaster_id") == [103, 102, 101, 104]

    def test_same_city_name_in_another_state_shares_disasters(self, client):
        il = client.get("/get_disasters_for_property", params={"property_id": "1"}).json()
        ma = client.get("/get_disasters_for_property", params={"property_id": "2"}).json()
        assert il == ma

    def test_unknown_property(self, client):
        assert client.get("/get_disasters_for_property", params={"property_id": "999"}).json() == []

    def test_bad_property_id(self, client):
        response = client.get("/get_disasters_for_property", params={"property_id": "x"})
        assert response.status_code == 400
        assert response.json()["field"] == "property_id"


class TestSearchDisasters:
    def test_city_and_bare_date_range(self, client):
        rows = client.get(
            "/search_disasters",
            params={
                "county_name": "Springfield",
                "designateddate_low": "2020-01-01",
                "designateddate_high": "2020-12-31",
            },
        ).json()
        assert ids(rows, "disasternumber") == [4001, 4002]

    def test_exported_date_picker_values(self, client):
        rows = client.get(
            "/search_disasters",
            params={
                "county_name": "springfield",
                "designateddate_low": "2020-01-01T00:00:00.000Z",
                "designateddate_high": "2020-12-31T23:59:00.000Z",
            },
        ).json()
        assert ids(rows, "disasternumber") == [4001, 4002]

    def test_type_code_exact(self, client):
        rows = client.get("/search_disasters", params={"type_code": "HM"}).json()
        assert ids(rows, "disasternumber") == [4101, 4200, 4300, 4400]
        assert all(row["type_code"] == "HM" for row in rows)

    def test_one_row_per_type(self, client):
        rows = client.get("/search_disasters", params={"disaster_id": "105"}).json()
        assert [row["type_code"] for row in rows] == ["DR", "FM"]

    def test_disaster_number(self, client):
        rows = client.get("/search_disasters", params={"disasternumber": "4001"}).json()
        assert len(rows) == 1
        assert rows[0]["type_description"] == "Major Disaster Declaration"

    def test_unfiltered_ordering(self, client):
        rows = client.get("/search_disasters").json()
        assert len(rows) == 15
        numbers = ids(rows, "disasternumber")
        assert numbers == sorted(numbers)

    def test_bad_date(self, client):
        response = client.get("/search_disasters", params={"designateddate_low": "last week"})
        assert response.status_code == 400
        assert response.json()["field"] == "designateddate_low"

    @pytest.mark.parametrize("high", ["2020-12-31", "2020-12-31T23:59:00.000Z"])
    def test_upper_bound_includes_last_minute_of_year(self, client, db, high):
        add_disaster(db, 200, 5001, datetime(2020, 12, 31, 23, 59), "Boulder")
        add_disaster(db, 201, 5002, datetime(2021, 1, 1, 0, 0), "Boulder")
        db.commit()

        rows = client.get(
            "/search_disasters",
            params={"county_name": "Boulder", "designateddate_low": "2020-01-01", "designateddate_high": high},
        ).json()
        assert ids(rows, "disasternumber") == [5001]


class TestDisasterRowCaps:
    @pytest.fixture
    def many_fresno_disasters(self, db):
        # Fresno is property 6's city
        for i in range(1100):
            add_disaster(db, 10_000 + i, 60_000 + i, datetime(1990, 1, 1) + timedelta(days=i), "Fresno")
        db.commit()

    def test_search_disasters_capped(self, client, many_fresno_disasters):
        rows = client.get("/search_disasters", params={"county_name": "Fresno"}).json()
        assert len(rows) == SEARCH_ROW_LIMIT
        assert ids(rows, "disasternumber") == list(range(60_000, 60_000 + SEARCH_ROW_LIMIT))

    def test_disasters_for_property_capped(self, client, many_fresno_disasters):
        rows = client.get("/get_disasters_for_property", params={"property_id": "6"}).json()
        assert len(rows) == SEARCH_ROW_LIMIT
        dates = [row["designateddate"] for row in rows]
        assert dates == sorted(dates, reverse=True)
        # The newest 1000 of 1100, so the oldest 100 are left out
        assert rows[0]["disaster_id"] == 11_099
        assert rows[-1]["disaster_id"] == 10_100


class TestQueryFailures:
    @pytest.fixture
    def broken_db(self, client):
        # A database without tables makes every query fail
        engine = make_engine()
        BrokenSession = sessionmaker(bind=engine)

        def override_get_db():
            session = BrokenSession()
            try:
                yield session
            finally:
                session.close()

        app.dependency_overrides[get_db] = override_get_db
        yield
        engine.dispose()

    def test_failed_query_is_503(self, client, broken_db):
        response = client.get("/search_properties")
        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "query_failed"
        assert "search_properties" in body["detail"]

    def test_failed_analytics_is_503(self, client, broken_db):
        assert client.get("/safest-cities-per-state").status_code == 503

    def test_empty_fallback(self, client, broken_db):
        app.dependency_overrides[get_settings] = lambda: Settings(database_url="sqlite://", empty_on_error=True)
        response = client.get("/search_disasters")
        assert response.status_code == 200
        assert response.json() == []

    def test_validation_runs_before_query(self, client, broken_db):
        assert client.get("/search_properties", params={"property_id": "x"}).status_code == 400
