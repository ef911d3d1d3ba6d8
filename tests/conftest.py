import os

# Point the module-level engine at SQLite before the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stormhaven.config import Settings
from stormhaven.database import Base, get_db
from stormhaven.main import app, get_clock, get_settings
from stormhaven.models import Disaster, DisasterType, Features, Located, Property

FIXED_NOW = datetime(2025, 6, 15, 12, 0, 0)

TYPE_DESCRIPTIONS = {
    "DR": "Major Disaster Declaration",
    "EM": "Emergency Declaration",
    "FM": "Fire Management",
    "HM": "Hazard Mitigation",
}

# property_id, city, state, price, status, bedrooms, bathrooms, acre_lot
PROPERTIES = [
    (1, "Springfield", "IL", 250_000, "for_sale", 3, 2.0, 0.25),
    (2, "Springfield", "MA", 180_000, "sold", 2, 1.0, 0.10),
    (3, "Los Angeles", "CA", 950_000, "for_sale", 4, 3.0, 0.30),
    (4, "San Diego", "CA", 150_000, "for_sale", 2, 1.5, 0.12),
    (5, "San Diego", "CA", 300_000, "sold", 3, 2.0, 0.20),
    (6, "Fresno", "CA", 99_000, "for_sale", 2, 1.0, 1.00),
    (7, "Los Angeles", "CA", 1_200_000, "sold", 5, 4.0, 0.50),
    (8, "West Springfield", "MA", 420_000, "for_sale", 3, 2.5, 2.00),
    (9, "Austin", "TX", 500_000, "for_sale", 4, 3.0, 0.40),
    (10, "Houston", "TX", 100_000, "for_sale", 1, 1.0, 0.05),
    (11, "Sacramento", "CA", 300_000, "for_sale", 3, 2.0, 0.20),
    (12, "Tampa", "FL", 200_000, "for_sale", 3, 2.0, 0.30),
]

# disaster_id, disasternumber, designateddate, city, type codes
DISASTERS = [
    (101, 4001, datetime(2020, 1, 1, 0, 0), "Springfield", ["DR"]),
    (102, 4002, datetime(2020, 12, 31, 18, 30), "Springfield", ["EM"]),
    (103, 4003, datetime(2021, 1, 1, 0, 0), "Springfield", ["DR"]),
    (104, 3999, datetime(2019, 12, 31, 23, 0), "Springfield", ["FM"]),
    (105, 4100, datetime(2023, 9, 10), "Los Angeles", ["FM", "DR"]),
    (106, 4101, datetime(2015, 3, 1), "Los Angeles", ["HM"]),
    (107, 4200, datetime(2017, 8, 25), "Houston", ["HM", "DR"]),
    (108, 4201, datetime(2025, 2, 1), "Houston", ["DR"]),
    (109, 4300, datetime(2010, 5, 5), "San Diego", ["HM"]),
    (110, 4301, datetime(2024, 1, 20), "West Springfield", ["DR"]),
    (111, 4102, datetime(2022, 7, 4), "Los Angeles", ["DR"]),
    (112, 4302, datetime(2024, 3, 3), "San Diego", ["DR"]),
    (113, 4400, datetime(2012, 9, 1), "Tampa", ["HM"]),
]

# property_id, disaster_id, city, state
LOCATED = [
    (1, 101, "Springfield", "IL"),
    (1, 102, "Springfield", "IL"),
    (1, 103, "Springfield", "IL"),
    (1, 104, "Springfield", "IL"),
    (2, 101, "Springfield", "MA"),
    (2, 104, "Springfield", "MA"),
    (3, 105, "Los Angeles", "CA"),
    (3, 106, "Los Angeles", "CA"),
    (3, 111, "Los Angeles", "CA"),
    (7, 105, "Los Angeles", "CA"),
    (10, 107, "Houston", "TX"),
    (10, 108, "Houston", "TX"),
    (4, 109, "San Diego", "CA"),
    (8, 110, "West Springfield", "MA"),
    (12, 113, "Tampa", "FL"),
]


def seed(session: Session) -> None:
    for pid, city, state, price, status, beds, baths, acres in PROPERTIES:
        session.add(Property(property_id=pid, county_name=city, state=state, price=price, status=status))
        session.add(Features(property_id=pid, bedrooms=beds, bathrooms=baths, acre_lot=acres))
    for did, number, designated, city, codes in DISASTERS:
        session.add(
            Disaster(
                disaster_id=did,
                disasternumber=number,
                designateddate=designated,
                county_name=city,
            )
        )
        for code in codes:
            session.add(
                DisasterType(disaster_id=did, type_code=code, type_description=TYPE_DESCRIPTIONS[code])
            )
    for pid, did, city, state in LOCATED:
        session.add(Located(property_id=pid, disaster_id=did, city=city, state=state))
    session.commit()


def make_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def engine():
    engine = make_engine()
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        seed(session)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://")


@pytest.fixture
def client(engine, settings):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: FIXED_NOW
    yield TestClient(app)
    app.dependency_overrides.clear()
