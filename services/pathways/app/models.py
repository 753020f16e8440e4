"""Database models for pathways, their options and tolls."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from src.common.db import Base


class Node(Base):
    """Transit node master data; read-only for this service."""

    __tablename__ = "nodes"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    code = Column(String(32), nullable=True)
    city_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    deleted_at = Column(DateTime, nullable=True)


class Pathway(Base):
    __tablename__ = "pathways"

    id = Column(Integer, primary_key=True, autoincrement=True)
    origin_node_id = Column(Integer, ForeignKey("nodes.id"), nullable=False, index=True)
    destination_node_id = Column(
        Integer, ForeignKey("nodes.id"), nullable=False, index=True
    )
    origin_city_id = Column(Integer, nullable=False, index=True)
    destination_city_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(64), nullable=False)
    description = Column(Text, nullable=True)
    is_sellable = Column(Boolean, nullable=False, default=False)
    is_empty_trip = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True, index=True)

    options = relationship("PathwayOption", back_populates="pathway", lazy="raise")


class PathwayOption(Base):
    __tablename__ = "pathway_options"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pathway_id = Column(
        Integer, ForeignKey("pathways.id"), nullable=False, index=True
    )
    name = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    distance_km = Column(Float, nullable=True)
    typical_time_min = Column(Integer, nullable=True)
    avg_speed_kmh = Column(Float, nullable=True)
    is_default = Column(Boolean, nullable=True)
    is_pass_through = Column(Boolean, nullable=True)
    pass_through_time_min = Column(Integer, nullable=True)
    sequence = Column(Integer, nullable=True)
    active = Column(Boolean, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True, index=True)

    pathway = relationship("Pathway", back_populates="options", lazy="raise")
    tolls = relationship("PathwayOptionToll", back_populates="option", lazy="raise")


class PathwayOptionToll(Base):
    __tablename__ = "pathway_option_tolls"
    __table_args__ = (
        Index(
            "ix_pathway_option_tolls_option_sequence",
            "pathway_option_id",
            "sequence",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    pathway_option_id = Column(
        Integer, ForeignKey("pathway_options.id"), nullable=False, index=True
    )
    node_id = Column(Integer, ForeignKey("nodes.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    pass_time_min = Column(Integer, nullable=True)
    distance = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True, index=True)

    option = relationship("PathwayOption", back_populates="tolls", lazy="raise")
