"""Pathway option aggregate: metrics, validation, persistence and tolls."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Sequence

from src.common.logging import get_logger

from . import schemas, tolls
from .errors import (
    BUSINESS_RULE_VIOLATION,
    INVALID_STATE,
    OPTION_MESSAGES,
    REQUIRED,
    FieldErrorCollector,
    InternalInvariantError,
    parse_payload,
    raise_business_rule,
)
from .measures import calculate_avg_speed
from .repositories import NodeStore, PathwayOptionStore, PathwayOptionTollStore

logger = get_logger(__name__)

_STORED_FIELDS = (
    "pathway_id",
    "name",
    "description",
    "distance_km",
    "typical_time_min",
    "avg_speed_kmh",
    "is_default",
    "is_pass_through",
    "pass_through_time_min",
    "sequence",
    "active",
)


def validate_metrics(
    distance_km: float | None,
    typical_time_min: float | None,
    collector: FieldErrorCollector,
) -> None:
    """Distance and typical time are required together and must be positive."""

    if not distance_km or distance_km <= 0:
        collector.add_error(
            "distance_km", REQUIRED, OPTION_MESSAGES["distance_required"], distance_km
        )
    if not typical_time_min or typical_time_min <= 0:
        collector.add_error(
            "typical_time_min",
            REQUIRED,
            OPTION_MESSAGES["time_required"],
            typical_time_min,
        )


def validate_option_rules(data: Mapping[str, Any], collector: FieldErrorCollector) -> None:
    """Pass-through pairing and default/active rules on a full option view."""

    is_pass_through = data.get("is_pass_through")
    pass_through_time = data.get("pass_through_time_min")
    if is_pass_through is True and (not pass_through_time or pass_through_time <= 0):
        collector.add_error(
            "pass_through_time_min",
            REQUIRED,
            OPTION_MESSAGES["pass_through_requires_time"],
            pass_through_time,
        )
    if is_pass_through is False and pass_through_time is not None:
        collector.add_error(
            "pass_through_time_min",
            BUSINESS_RULE_VIOLATION,
            OPTION_MESSAGES["pass_through_time_without_flag"],
            pass_through_time,
        )
    if data.get("is_default") is True and data.get("active") is False:
        collector.add_error(
            "active",
            BUSINESS_RULE_VIOLATION,
            OPTION_MESSAGES["default_requires_active"],
            False,
        )


def new_option_data(payload: schemas.CreatePathwayOptionPayload) -> dict[str, Any]:
    """Stored values of a new option with defaults applied (speed not derived)."""

    return {
        "id": None,
        "pathway_id": payload.pathway_id,
        "name": payload.name,
        "description": payload.description,
        "distance_km": payload.distance_km,
        "typical_time_min": payload.typical_time_min,
        "avg_speed_kmh": payload.avg_speed_kmh,
        "is_default": bool(payload.is_default),
        "is_pass_through": bool(payload.is_pass_through),
        "pass_through_time_min": payload.pass_through_time_min,
        "sequence": payload.sequence,
        "active": True if payload.active is None else payload.active,
        "created_at": None,
        "updated_at": None,
        "deleted_at": None,
    }


def merge_option_changes(
    current: Mapping[str, Any], changes: Mapping[str, Any]
) -> tuple[dict[str, Any], FieldErrorCollector]:
    """Apply ``changes`` to ``current`` and collect every rule violation.

    Returns the stored-field changes to write (with a recomputed speed when
    distance or time moved and no speed was re-supplied) and the collector.
    """

    changes = dict(changes)
    merged = {**current, **changes}
    collector = FieldErrorCollector()
    validate_option_rules(merged, collector)
    metrics_changed = "distance_km" in changes or "typical_time_min" in changes
    if metrics_changed:
        validate_metrics(merged["distance_km"], merged["typical_time_min"], collector)
        if changes.get("avg_speed_kmh") is None and not collector.has_errors:
            changes["avg_speed_kmh"] = calculate_avg_speed(
                merged["distance_km"], merged["typical_time_min"]
            )
    return changes, collector


class PathwayOptionEntity:
    """Snapshot of one option plus the operations allowed on it.

    Instances never change; every mutating call returns a new entity.
    """

    def __init__(self, factory: "PathwayOptionFactory", data: Mapping[str, Any]) -> None:
        self._factory = factory
        self._data = MappingProxyType(dict(data))
        self._saved: PathwayOptionEntity | None = None

    def __repr__(self) -> str:
        return f"PathwayOptionEntity(id={self.id!r}, pathway_id={self.pathway_id!r})"

    @property
    def data(self) -> Mapping[str, Any]:
        return self._data

    @property
    def id(self) -> int | None:
        return self._data.get("id")

    @property
    def pathway_id(self) -> int:
        return self._data["pathway_id"]

    @property
    def is_default(self) -> bool:
        return bool(self._data.get("is_default"))

    @property
    def active(self) -> bool:
        return bool(self._data.get("active"))

    @property
    def avg_speed_kmh(self) -> float | None:
        return self._data.get("avg_speed_kmh")

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def _require_persisted(self) -> int:
        if not self.is_persisted:
            raise_business_rule("id", INVALID_STATE, OPTION_MESSAGES["not_persisted"])
        return self.id  # type: ignore[return-value]

    async def save(self) -> "PathwayOptionEntity":
        """Insert the option once; later calls return an equivalent entity."""

        if self.is_persisted:
            return self._factory.from_data(self._data)
        if self._saved is None:
            payload = {field: self._data[field] for field in _STORED_FIELDS}
            option = await self._factory.options.create(payload)
            logger.info(
                "pathway_option.created",
                option_id=option.id,
                pathway_id=option.pathway_id,
                is_default=option.is_default,
            )
            self._saved = self._factory.from_data(option)
        return self._factory.from_data(self._saved.data)

    async def update(
        self,
        payload: schemas.UpdatePathwayOptionPayload | Mapping[str, Any],
        *,
        is_default: bool | None = None,
    ) -> "PathwayOptionEntity":
        """Persist changes after validating the merged option.

        ``is_default`` is used by callers that move the default flag in the
        same transaction; it takes part in validation and is written too.
        """

        option_id = self._require_persisted()
        parsed = parse_payload(schemas.UpdatePathwayOptionPayload, payload)
        changes = parsed.model_dump(exclude_unset=True)
        if is_default is not None:
            changes["is_default"] = is_default

        changes, collector = merge_option_changes(self._data, changes)
        collector.raise_if_errors()

        updated = await self._factory.options.update(option_id, changes)
        if updated.avg_speed_kmh != self.avg_speed_kmh:
            await self._rederive_toll_pass_times(option_id, updated.avg_speed_kmh)
        return self._factory.from_data(updated)

    async def _rederive_toll_pass_times(
        self, option_id: int, new_speed: float | None
    ) -> None:
        current = await self._factory.tolls.find_by_option_id(option_id)
        updates = tolls.rederive_pass_times(current, self.avg_speed_kmh, new_speed)
        if updates:
            await self._factory.tolls.update_many(updates)
            logger.info(
                "pathway_option.toll_times_rederived",
                option_id=option_id,
                tolls=len(updates),
            )

    async def get_tolls(self) -> list[schemas.PathwayOptionToll]:
        option_id = self._require_persisted()
        return await self._factory.tolls.find_by_option_id(option_id)

    async def sync_tolls(
        self, tolls_input: Sequence[schemas.SyncTollInput | Mapping[str, Any]]
    ) -> "PathwayOptionEntity":
        """Replace every toll of the option with ``tolls_input``, in order."""

        option_id = self._require_persisted()
        parsed = parse_payload(schemas.SyncTollsPayload, {"tolls": list(tolls_input)})

        collector = FieldErrorCollector()
        await tolls.validate_toll_nodes_exist(
            parsed.tolls, self._factory.nodes, collector
        )
        tolls.validate_toll_structure(parsed.tolls, collector)
        collector.raise_if_errors()

        await self._factory.tolls.delete_by_option_id(option_id)
        rows = tolls.sequence_tolls(option_id, self.avg_speed_kmh, parsed.tolls)
        await self._factory.tolls.create_many(rows)
        logger.info("pathway_option.tolls_synced", option_id=option_id, tolls=len(rows))
        return await self._factory.find_one(option_id)

    def to_option(self) -> schemas.PathwayOption:
        if self.id is None or self._data.get("pathway_id") is None:
            raise InternalInvariantError(
                "Cannot convert a non-persisted option to PathwayOption"
            )
        return schemas.PathwayOption.model_validate(dict(self._data))


class PathwayOptionFactory:
    """Builds option entities bound to one set of stores."""

    def __init__(
        self,
        options: PathwayOptionStore,
        tolls: PathwayOptionTollStore,
        nodes: NodeStore,
    ) -> None:
        self.options = options
        self.tolls = tolls
        self.nodes = nodes

    def create(
        self, payload: schemas.CreatePathwayOptionPayload | Mapping[str, Any]
    ) -> PathwayOptionEntity:
        """Validate and build a new, not yet persisted option."""

        parsed = parse_payload(schemas.CreatePathwayOptionPayload, payload)
        data = new_option_data(parsed)

        collector = FieldErrorCollector()
        validate_option_rules(data, collector)
        validate_metrics(data["distance_km"], data["typical_time_min"], collector)
        collector.raise_if_errors()

        if data["avg_speed_kmh"] is None:
            data["avg_speed_kmh"] = calculate_avg_speed(
                data["distance_km"], data["typical_time_min"]
            )
        return PathwayOptionEntity(self, data)

    def from_data(
        self, option: schemas.PathwayOption | Mapping[str, Any]
    ) -> PathwayOptionEntity:
        if isinstance(option, schemas.PathwayOption):
            option = option.model_dump()
        return PathwayOptionEntity(self, option)

    async def find_one(self, option_id: int) -> PathwayOptionEntity:
        return self.from_data(await self.options.find_one(option_id))

