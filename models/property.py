from sqlalchemy import Column, BigInteger, String, Integer, Float, Boolean, ForeignKey, Index
from models.base import Base, BigIntPK, TimestampMixin, UnitStatus, enum_column_type


class Property(TimestampMixin, Base):
    """
    Canonical property row, keyed by AppFolio's property_id.

    Field Mapping (property_directory.json):
    - property_id -> external_id
    - property_name | property_address | property | property_street -> name
    - property_street / property_street2 -> address_line1 / address_line2
    - units | number_of_units | unit_count -> unit_count
    - visibility == "Active" -> is_active
    """
    __tablename__ = "properties"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False, unique=True, index=True)

    name = Column(String(255), nullable=False)
    address_line1 = Column(String(255), nullable=True)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip = Column(String(20), nullable=True)
    county = Column(String(100), nullable=True)

    property_type = Column(String(50), nullable=True)
    unit_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    portfolio = Column(String(255), nullable=True)
    portfolio_id = Column(Integer, nullable=True)
    year_built = Column(Integer, nullable=True)
    total_sqft = Column(Integer, nullable=True)


class Unit(TimestampMixin, Base):
    """Canonical unit row. Always belongs to an existing property."""
    __tablename__ = "units"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False, unique=True, index=True)
    property_id = Column(BigInteger, ForeignKey("properties.id"), nullable=False, index=True)

    unit_number = Column(String(100), nullable=False)
    unit_type = Column(String(100), nullable=True)
    sqft = Column(Integer, nullable=True)
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Float, nullable=True)

    status = Column(enum_column_type(UnitStatus, "unit_status"), nullable=False, default=UnitStatus.VACANT)
    market_rent = Column(Float, nullable=True)
    advertised_rent = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    rentable = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_unit_status", "status"),
    )
