"""Pathway aggregate.

A :class:`PathwayEntity` owns the options of one pathway and guards the rules
that span them: exactly one default option whenever options exist and at
least one option while the pathway is active.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Sequence

from src.common.logging import get_logger

from . import schemas
from .errors import (
    BUSINESS_RULE_VIOLATION,
    INVALID_REFERENCE,
    INVALID_STATE,
    NOT_FOUND,
    PATHWAY_MESSAGES,
    REQUIRED,
    FieldErrorCollector,
    InternalInvariantError,
    parse_payload,
    raise_business_rule,
)
from .options import PathwayOptionEntity, PathwayOptionFactory
from .repositories import Repositories

logger = get_logger(__name__)

_NOT_NULL_FIELDS = (
    "origin_node_id",
    "destination_node_id",
    "name",
    "code",
    "is_sellable",
    "is_empty_trip",
    "active",
)


def validate_pathway_rules(data: Mapping[str, Any], collector: FieldErrorCollector) -> None:
    origin = data.get("origin_node_id")
    if origin is not None and origin == data.get("destination_node_id"):
        collector.add_error(
            "destination_node_id",
            BUSINESS_RULE_VIOLATION,
            PATHWAY_MESSAGES["same_origin_destination"],
            origin,
        )
    if data.get("is_empty_trip") and data.get("is_sellable"):
        collector.add_error(
            "is_sellable",
            BUSINESS_RULE_VIOLATION,
            PATHWAY_MESSAGES["empty_trip_sellable"],
            True,
        )


class PathwayEntity:
    """Immutable pathway snapshot with its option operations.

    ``save`` and ``update`` return new entities. Option level operations
    return the affected option entity and drop the cached option list.
    """

    def __init__(self, factory: "PathwayFactory", data: Mapping[str, Any]) -> None:
        self._factory = factory
        self._data = MappingProxyType(dict(data))
        self._saved: PathwayEntity | None = None
        self._options: list[PathwayOptionEntity] | None = None

    def __repr__(self) -> str:
        return f"PathwayEntity(id={self.id!r}, code={self._data.get('code')!r})"

    @property
    def data(self) -> Mapping[str, Any]:
        return self._data

    @property
    def id(self) -> int | None:
        return self._data.get("id")

    @property
    def active(self) -> bool:
        return bool(self._data.get("active"))

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def _require_persisted(self) -> int:
        if not self.is_persisted:
            raise_business_rule("id", INVALID_STATE, PATHWAY_MESSAGES["not_persisted"])
        return self.id  # type: ignore[return-value]

    async def _resolve_nodes(
        self, origin_id: int, destination_id: int
    ) -> dict[str, int]:
        """City ids of both nodes; missing nodes are reported together."""

        found = {
            node.id: node
            for node in await self._factory.nodes.find_by_ids([origin_id, destination_id])
        }
        collector = FieldErrorCollector()
        if origin_id not in found:
            collector.add_error(
                "origin_node_id",
                NOT_FOUND,
                PATHWAY_MESSAGES["origin_node_not_found"],
                origin_id,
            )
        if destination_id not in found:
            collector.add_error(
                "destination_node_id",
                NOT_FOUND,
                PATHWAY_MESSAGES["destination_node_not_found"],
                destination_id,
            )
        collector.raise_if_errors()
        return {
            "origin_city_id": found[origin_id].city_id,
            "destination_city_id": found[destination_id].city_id,
        }

    async def save(self) -> "PathwayEntity":
        if self.is_persisted:
            return self._factory.from_data(self._data)
        if self._saved is None:
            data = dict(self._data)
            data.pop("id", None)
            data.update(
                await self._resolve_nodes(
                    data["origin_node_id"], data["destination_node_id"]
                )
            )
            pathway = await self._factory.pathways.create(data)
            logger.info("pathway.created", pathway_id=pathway.id, code=pathway.code)
            self._saved = self._factory.from_data(pathway)
        return self._factory.from_data(self._saved.data)

    async def update(
        self, payload: schemas.UpdatePathwayPayload | Mapping[str, Any]
    ) -> "PathwayEntity":
        pathway_id = self._require_persisted()
        parsed = parse_payload(schemas.UpdatePathwayPayload, payload)
        changes = parsed.model_dump(exclude_unset=True)

        collector = FieldErrorCollector()
        for field in _NOT_NULL_FIELDS:
            if field in changes and changes[field] is None:
                collector.add_error(field, REQUIRED, f"{field} cannot be null")
        merged = {**self._data, **{k: v for k, v in changes.items() if v is not None}}
        validate_pathway_rules(merged, collector)
        collector.raise_if_errors()

        if changes.get("active") is True and not self.active:
            if not await self.options():
                raise_business_rule(
                    "active",
                    BUSINESS_RULE_VIOLATION,
                    PATHWAY_MESSAGES["activation_without_options"],
                    True,
                )

        if "origin_node_id" in changes or "destination_node_id" in changes:
            changes.update(
                await self._resolve_nodes(
                    merged["origin_node_id"], merged["destination_node_id"]
                )
            )

        pathway = await self._factory.pathways.update(pathway_id, changes)
        if pathway.active != self.active:
            logger.info(
                "pathway.activation_changed", pathway_id=pathway_id, active=pathway.active
            )
        return self._factory.from_data(pathway)

    async def options(self) -> list[PathwayOptionEntity]:
        """Live options of the pathway, loaded once per entity."""

        pathway_id = self._require_persisted()
        if self._options is None:
            rows = await self._factory.option_factory.options.find_by_pathway_id(
                pathway_id
            )
            self._options = [self._factory.option_factory.from_data(r) for r in rows]
        return list(self._options)

    def invalidate_options(self) -> None:
        self._options = None

    async def _owned_option(self, option_id: int) -> PathwayOptionEntity:
        pathway_id = self._require_persisted()
        option = await self._factory.option_factory.find_one(option_id)
        if option.pathway_id != pathway_id:
            raise_business_rule(
                "option_id",
                INVALID_REFERENCE,
                PATHWAY_MESSAGES["option_belongs_to_different_pathway"],
                option_id,
            )
        return option

    async def add_option(
        self, payload: schemas.AddPathwayOptionPayload | Mapping[str, Any]
    ) -> PathwayOptionEntity:
        """Create an option on this pathway.

        The first option is always the default. Later options are not,
        unless ``is_default`` is requested, which moves the default to them.
        """

        pathway_id = self._require_persisted()
        parsed = parse_payload(schemas.AddPathwayOptionPayload, payload)
        existing = await self.options()

        is_default = parsed.is_default
        if not existing:
            if is_default is False:
                raise_business_rule(
                    "is_default",
                    BUSINESS_RULE_VIOLATION,
                    PATHWAY_MESSAGES["first_option_must_be_default"],
                    False,
                )
            is_default = True
        else:
            is_default = bool(is_default)

        data = parsed.model_dump(exclude_unset=True)
        data.update(pathway_id=pathway_id, is_default=is_default)
        option = await self._factory.option_factory.create(data).save()
        self.invalidate_options()

        if is_default and existing:
            await self._factory.option_factory.options.set_default_option(
                pathway_id, option.id
            )
            option = await self._factory.option_factory.find_one(option.id)
        return option

    async def remove_option(self, option_id: int) -> PathwayOptionEntity:
        self._require_persisted()
        option = await self._owned_option(option_id)
        if option.is_default:
            raise_business_rule(
                "option_id",
                BUSINESS_RULE_VIOLATION,
                PATHWAY_MESSAGES["cannot_remove_default_option"],
                option_id,
            )
        if self.active and len(await self.options()) <= 1:
            raise_business_rule(
                "option_id",
                BUSINESS_RULE_VIOLATION,
                PATHWAY_MESSAGES["cannot_remove_last_option"],
                option_id,
            )
        deleted = await self._factory.option_factory.options.delete(option_id)
        self.invalidate_options()
        logger.info("pathway_option.removed", pathway_id=self.id, option_id=option_id)
        return self._factory.option_factory.from_data(deleted)

    async def update_option(
        self,
        option_id: int,
        payload: schemas.UpdatePathwayOptionPayload | Mapping[str, Any],
    ) -> PathwayOptionEntity:
        option = await self._owned_option(option_id)
        updated = await option.update(payload)
        self.invalidate_options()
        return updated

    async def set_default_option(self, option_id: int) -> PathwayOptionEntity:
        pathway_id = self._require_persisted()
        option = await self._owned_option(option_id)
        if option.is_default:
            return option
        if not option.active:
            raise_business_rule(
                "option_id",
                BUSINESS_RULE_VIOLATION,
                PATHWAY_MESSAGES["default_option_inactive"],
                option_id,
            )
        await self._factory.option_factory.options.set_default_option(
            pathway_id, option_id
        )
        self.invalidate_options()
        logger.info("pathway.default_option_set", pathway_id=pathway_id, option_id=option_id)
        return await self._factory.option_factory.find_one(option_id)

    async def sync_option_tolls(
        self,
        option_id: int,
        tolls: Sequence[schemas.SyncTollInput | Mapping[str, Any]],
    ) -> PathwayOptionEntity:
        option = await self._owned_option(option_id)
        synced = await option.sync_tolls(tolls)
        self.invalidate_options()
        return synced

    async def get_option_tolls(self, option_id: int) -> list[schemas.PathwayOptionToll]:
        option = await self._owned_option(option_id)
        return await option.get_tolls()

    def to_pathway(self) -> schemas.Pathway:
        missing = [
            field
            for field in ("id", "origin_city_id", "destination_city_id")
            if self._data.get(field) is None
        ]
        if missing:
            raise InternalInvariantError(
                f"Pathway is missing required fields: {', '.join(missing)}"
            )
        return schemas.Pathway.model_validate(dict(self._data))


class PathwayFactory:
    """Builds pathway entities bound to one transaction's stores."""

    def __init__(self, repositories: Repositories) -> None:
        self.pathways = repositories.pathways
        self.nodes = repositories.nodes
        self.option_factory = PathwayOptionFactory(
            repositories.options, repositories.tolls, repositories.nodes
        )

    def create(
        self, payload: schemas.CreatePathwayPayload | Mapping[str, Any]
    ) -> PathwayEntity:
        parsed = parse_payload(schemas.CreatePathwayPayload, payload)
        data = parsed.model_dump(exclude={"active"})

        collector = FieldErrorCollector()
        validate_pathway_rules(data, collector)
        collector.raise_if_errors()

        data.update(
            id=None,
            active=False,
            origin_city_id=None,
            destination_city_id=None,
        )
        return PathwayEntity(self, data)

    def from_data(self, pathway: schemas.Pathway | Mapping[str, Any]) -> PathwayEntity:
        if isinstance(pathway, schemas.Pathway):
            pathway = pathway.model_dump()
        return PathwayEntity(self, pathway)

    async def find_one(self, pathway_id: int, *, for_update: bool = False) -> PathwayEntity:
        return self.from_data(
            await self.pathways.find_one(pathway_id, for_update=for_update)
        )
