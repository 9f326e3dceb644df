"""Database models for AutoQL tests (shared)."""

import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, column_property, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for test models."""
    pass


class EntityBase(Base):
    """Marker for every entity served by the test schema."""
    __abstract__ = True

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class Thing(EntityBase):
    """Things with a name and a description"""
    __tablename__ = 'things'
    __table_args__ = {'info': {'description': 'Things exposed through the API'}}

    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(String(500))
    count: Mapped[int] = mapped_column(Integer, default=0)
    # Computed (read-only) column
    name_length: Mapped[int] = column_property(func.length(name))

    other_things: Mapped[List["OtherThing"]] = relationship(
        back_populates="thing",
        info={'filtering': True, 'sorting': True},
    )


class OtherThing(EntityBase):
    __tablename__ = 'other_things'

    # Classic Column style on purpose: no annotations
    creation_date = Column(DateTime, nullable=False)
    thing_id = Column(Integer, ForeignKey('things.id'), nullable=False)

    thing = relationship("Thing", back_populates="other_things")


class GadgetKind(enum.Enum):
    TOOL = "tool"
    TOY = "toy"


class Gadget(EntityBase):
    """Gadgets cover the less common scalar types."""
    __tablename__ = 'gadgets'

    label: Mapped[str] = mapped_column(String(50))
    kind: Mapped[GadgetKind] = mapped_column(SAEnum(GadgetKind), default=GadgetKind.TOOL)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    extra: Mapped[Optional[dict]] = mapped_column(JSON)
    made_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
