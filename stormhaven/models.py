"""SQLAlchemy models for StormHaven property and disaster data.

Table and column names follow the production PostgreSQL schema, which the
analytics views and the materialized views are written against.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class Property(Base):
    """A listed property.

    `county_name` holds the city (or county) name as free text. It is also the
    key used to associate disasters with a property, by name equality.
    """

    __tablename__ = "property"

    property_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    county_name: Mapped[str | None] = mapped_column(Text, index=True)
    state: Mapped[str | None] = mapped_column(String(50), index=True)
    price: Mapped[float | None] = mapped_column(Numeric(14, 2, asdecimal=False))
    status: Mapped[str | None] = mapped_column(String(20))  # for_sale, sold

    # Relationships
    features: Mapped["Features"] = relationship(
        "Features", back_populates="property", uselist=False
    )
    located: Mapped[list["Located"]] = relationship("Located", back_populates="property")

    def __repr__(self) -> str:
        return f"<Property {self.property_id}: {self.county_name}, {self.state}>"


class Features(Base):
    """Physical attributes of a property, 1:1 on property_id."""

    __tablename__ = "features"

    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("property.property_id"), primary_key=True
    )
    bedrooms: Mapped[int | None] = mapped_column(Integer)
    bathrooms: Mapped[float | None] = mapped_column(Float)
    acre_lot: Mapped[float | None] = mapped_column(Float)
    house_size: Mapped[float | None] = mapped_column(Float)

    property: Mapped["Property"] = relationship("Property", back_populates="features")

    def __repr__(self) -> str:
        return f"<Features {self.property_id}: {self.bedrooms}bd/{self.bathrooms}ba>"


class Disaster(Base):
    """A FEMA-style disaster designation for a named location."""

    __tablename__ = "disaster"

    disaster_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    disasternumber: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    designateddate: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    closeoutdate: Mapped[datetime | None] = mapped_column(DateTime)
    county_name: Mapped[str | None] = mapped_column(Text, index=True)

    # Relationships
    types: Mapped[list["DisasterType"]] = relationship("DisasterType", back_populates="disaster")

    def __repr__(self) -> str:
        return f"<Disaster {self.disasternumber} ({self.county_name})>"


class DisasterType(Base):
    """Incident type of a disaster; a disaster may carry several."""

    __tablename__ = "disaster_types"

    disaster_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("disaster.disaster_id"), primary_key=True
    )
    type_code: Mapped[str] = mapped_column(String(10), primary_key=True)  # HM, DR, EM, FM
    type_description: Mapped[str | None] = mapped_column(Text)

    disaster: Mapped["Disaster"] = relationship("Disaster", back_populates="types")

    def __repr__(self) -> str:
        return f"<DisasterType {self.disaster_id}: {self.type_code}>"


class Located(Base):
    """A property recorded as lying in the area of a disaster."""

    __tablename__ = "located"

    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("property.property_id"), primary_key=True
    )
    disaster_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("disaster.disaster_id"), primary_key=True
    )
    city: Mapped[str | None] = mapped_column(Text)
    state: Mapped[str | None] = mapped_column(String(50))

    # Relationships
    property: Mapped["Property"] = relationship("Property", back_populates="located")
    disaster: Mapped["Disaster"] = relationship("Disaster")

    def __repr__(self) -> str:
        return f"<Located {self.property_id} <- {self.disaster_id}>"
