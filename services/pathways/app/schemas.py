"""Pydantic snapshots and payloads exchanged with callers."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Snapshot(BaseModel):
    """Immutable plain-data view of a stored row."""

    model_config = {"from_attributes": True, "frozen": True}


class Node(Snapshot):
    id: int
    name: str
    code: Optional[str] = None
    city_id: int


class Pathway(Snapshot):
    id: int
    origin_node_id: int
    destination_node_id: int
    origin_city_id: int
    destination_city_id: int
    name: str
    code: str
    description: Optional[str] = None
    is_sellable: bool
    is_empty_trip: bool
    active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class PathwayOption(Snapshot):
    id: int
    pathway_id: int
    name: Optional[str] = None
    description: Optional[str] = None
    distance_km: Optional[float] = None
    typical_time_min: Optional[int] = None
    avg_speed_kmh: Optional[float] = None
    is_default: Optional[bool] = None
    is_pass_through: Optional[bool] = None
    pass_through_time_min: Optional[int] = None
    sequence: Optional[int] = None
    active: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class PathwayOptionToll(Snapshot):
    id: int
    pathway_option_id: int
    node_id: int
    sequence: int
    pass_time_min: Optional[int] = None
    distance: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class PathwayWithOptions(Pathway):
    options: list[PathwayOption] = Field(default_factory=list)


# Payloads


class CreatePathwayPayload(BaseModel):
    origin_node_id: int = Field(gt=0)
    destination_node_id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=64)
    description: Optional[str] = None
    is_sellable: bool = False
    is_empty_trip: bool = False
    # Accepted for compatibility; new pathways always start inactive.
    active: Optional[bool] = None


class UpdatePathwayPayload(BaseModel):
    model_config = {"extra": "forbid"}

    origin_node_id: Optional[int] = Field(default=None, gt=0)
    destination_node_id: Optional[int] = Field(default=None, gt=0)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = None
    is_sellable: Optional[bool] = None
    is_empty_trip: Optional[bool] = None
    active: Optional[bool] = None


class PathwayOptionFields(BaseModel):
    """Editable option attributes; metric rules are checked by the aggregate."""

    name: Optional[str] = None
    description: Optional[str] = None
    distance_km: Optional[float] = None
    typical_time_min: Optional[int] = None
    avg_speed_kmh: Optional[float] = Field(default=None, gt=0)
    is_pass_through: Optional[bool] = None
    pass_through_time_min: Optional[int] = None
    sequence: Optional[int] = None
    active: Optional[bool] = None


class CreatePathwayOptionPayload(PathwayOptionFields):
    pathway_id: int = Field(gt=0)
    is_default: Optional[bool] = None


class AddPathwayOptionPayload(PathwayOptionFields):
    is_default: Optional[bool] = None


class UpdatePathwayOptionPayload(PathwayOptionFields):
    # pathway_id is immutable and the default flag has its own operation.
    model_config = {"extra": "forbid"}


class SyncTollInput(BaseModel):
    node_id: int = Field(gt=0)
    pass_time_min: Optional[int] = Field(default=None, ge=0)
    distance: Optional[float] = Field(default=None, ge=0)
    # Ignored: sequence always follows the position in the submitted list.
    sequence: Optional[int] = None


class SyncTollsPayload(BaseModel):
    tolls: list[SyncTollInput] = Field(default_factory=list)


class BulkSyncOptionInput(PathwayOptionFields):
    id: Optional[int] = Field(default=None, gt=0)
    is_default: Optional[bool] = None
    # None keeps the option's tolls untouched; [] removes them all.
    tolls: Optional[list[SyncTollInput]] = None


class BulkSyncOptionsPayload(BaseModel):
    options: list[BulkSyncOptionInput]
