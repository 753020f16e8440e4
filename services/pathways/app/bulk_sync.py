"""Reconcile the whole option set of a pathway in one pass."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping

from src.common.logging import get_logger

from . import schemas, tolls
from .errors import (
    BULK_SYNC_MESSAGES,
    BUSINESS_RULE_VIOLATION,
    DUPLICATE,
    INVALID_REFERENCE,
    NOT_FOUND,
    OPTION_MESSAGES,
    FieldErrorCollector,
    BusinessRuleError,
    parse_payload,
    raise_business_rule,
)
from .options import (
    PathwayOptionEntity,
    PathwayOptionFactory,
    merge_option_changes,
    new_option_data,
    validate_metrics,
    validate_option_rules,
)

if TYPE_CHECKING:
    from .pathways import PathwayEntity

logger = get_logger(__name__)

_ENTRY_ONLY_FIELDS = {"id", "is_default", "tolls"}


@dataclass
class SyncPlan:
    """What a bulk sync will do, computed before anything is written."""

    creates: list[int] = field(default_factory=list)
    updates: dict[int, schemas.PathwayOption] = field(default_factory=dict)
    deletes: list[schemas.PathwayOption] = field(default_factory=list)
    default_index: int | None = None


def _option_fields(entry: schemas.BulkSyncOptionInput) -> dict[str, Any]:
    return entry.model_dump(exclude_unset=True, exclude=_ENTRY_ONLY_FIELDS)


def _normalized_name(name: str | None) -> str | None:
    if name is None:
        return None
    name = name.strip().lower()
    return name or None


class PathwayOptionDomainService:
    """Bulk create/update/delete of a pathway's options with default election."""

    def __init__(self, option_factory: PathwayOptionFactory) -> None:
        self.option_factory = option_factory

    async def bulk_sync_options(
        self,
        pathway: "PathwayEntity",
        pathway_id: int,
        payload: schemas.BulkSyncOptionsPayload | Mapping[str, Any],
    ) -> list[schemas.PathwayOption]:
        """Make the pathway's options match ``payload`` exactly.

        Entries with an ``id`` update that option, entries without one are
        created and current options left out are deleted. Entries carrying a
        ``tolls`` list get their tolls replaced. Every check runs before the
        first write, so a rejected payload leaves the store untouched.
        """

        if pathway.id != pathway_id:
            raise_business_rule(
                "pathway_id",
                INVALID_REFERENCE,
                BULK_SYNC_MESSAGES["pathway_mismatch"],
                pathway_id,
            )
        parsed = parse_payload(schemas.BulkSyncOptionsPayload, payload)
        entries = parsed.options
        current = await self.option_factory.options.find_by_pathway_id(pathway_id)

        plan = await self._plan(pathway_id, entries, current)
        self._check_result(pathway, entries, plan)

        for option in plan.deletes:
            await self.option_factory.options.delete(option.id)

        saved: dict[int, PathwayOptionEntity] = {}
        for index, option in plan.updates.items():
            entity = self.option_factory.from_data(option)
            saved[index] = await entity.update(
                _option_fields(entries[index]),
                is_default=index == plan.default_index,
            )
        for index in plan.creates:
            data = _option_fields(entries[index])
            data.update(pathway_id=pathway_id, is_default=index == plan.default_index)
            saved[index] = await self.option_factory.create(data).save()

        for index, entry in enumerate(entries):
            if entry.tolls is not None:
                saved[index] = await saved[index].sync_tolls(entry.tolls)

        if plan.default_index is not None:
            await self.option_factory.options.set_default_option(
                pathway_id, saved[plan.default_index].id
            )

        pathway.invalidate_options()
        logger.info(
            "pathway_options.bulk_synced",
            pathway_id=pathway_id,
            created=len(plan.creates),
            updated=len(plan.updates),
            deleted=len(plan.deletes),
        )
        return await self.option_factory.options.find_by_pathway_id(pathway_id)

    async def _plan(
        self,
        pathway_id: int,
        entries: list[schemas.BulkSyncOptionInput],
        current: list[schemas.PathwayOption],
    ) -> SyncPlan:
        """Categorize entries and collect every field level problem."""

        by_id = {option.id: option for option in current}
        plan = SyncPlan()
        collector = FieldErrorCollector()

        explicit_defaults = [i for i, e in enumerate(entries) if e.is_default is True]
        if len(explicit_defaults) > 1:
            for index in explicit_defaults:
                collector.add_error(
                    f"options[{index}].is_default",
                    BUSINESS_RULE_VIOLATION,
                    BULK_SYNC_MESSAGES["multiple_defaults"],
                    True,
                )

        seen_ids: set[int] = set()
        unknown: dict[int, int] = {}
        for index, entry in enumerate(entries):
            if entry.id is None:
                plan.creates.append(index)
            elif entry.id in seen_ids:
                collector.add_error(
                    f"options[{index}].id",
                    DUPLICATE,
                    BULK_SYNC_MESSAGES["duplicate_ids"],
                    entry.id,
                )
            elif entry.id in by_id:
                plan.updates[index] = by_id[entry.id]
            else:
                unknown[index] = entry.id
            if entry.id is not None:
                seen_ids.add(entry.id)

        if unknown:
            elsewhere = {
                option.id
                for option in await self.option_factory.options.find_by_ids(
                    list(unknown.values())
                )
                if option.pathway_id != pathway_id
            }
            for index, option_id in unknown.items():
                if option_id in elsewhere:
                    collector.add_error(
                        f"options[{index}].id",
                        INVALID_REFERENCE,
                        BULK_SYNC_MESSAGES["option_from_different_pathway"],
                        option_id,
                    )
                else:
                    collector.add_error(
                        f"options[{index}].id",
                        NOT_FOUND,
                        BULK_SYNC_MESSAGES["option_not_found"],
                        option_id,
                    )

        kept = {option.id for option in plan.updates.values()}
        plan.deletes = [option for option in current if option.id not in kept]

        self._check_names(entries, plan, collector)
        await self._check_entries(pathway_id, entries, plan, collector)
        collector.raise_if_errors()

        plan.default_index = self._elect_default(entries, plan, current)
        return plan

    def _check_names(
        self,
        entries: list[schemas.BulkSyncOptionInput],
        plan: SyncPlan,
        collector: FieldErrorCollector,
    ) -> None:
        names: dict[str, int] = {}
        for index, entry in enumerate(entries):
            if "name" in entry.model_fields_set or index not in plan.updates:
                name = entry.name
            else:
                name = plan.updates[index].name
            key = _normalized_name(name)
            if key is None:
                continue
            if key in names:
                collector.add_error(
                    f"options[{index}].name",
                    DUPLICATE,
                    BULK_SYNC_MESSAGES["duplicate_names"],
                    name,
                )
            else:
                names[key] = index

    async def _check_entries(
        self,
        pathway_id: int,
        entries: list[schemas.BulkSyncOptionInput],
        plan: SyncPlan,
        collector: FieldErrorCollector,
    ) -> None:
        """Option and toll rules of every entry, default flag left out.

        The default/active pairing is checked once the default is elected.
        """

        node_ids = {
            toll.node_id for entry in entries for toll in (entry.tolls or [])
        }
        existing_nodes: set[int] = set()
        if node_ids:
            found = await self.option_factory.nodes.find_by_ids(sorted(node_ids))
            existing_nodes = {node.id for node in found}

        for index, entry in enumerate(entries):
            entry_errors = FieldErrorCollector()
            fields = _option_fields(entry)
            if index in plan.updates:
                current = {**plan.updates[index].model_dump(), "is_default": None}
                _, merged_errors = merge_option_changes(current, fields)
                entry_errors.extend(merged_errors)
            elif entry.id is None:
                create = schemas.CreatePathwayOptionPayload(
                    pathway_id=pathway_id, **fields
                )
                data = new_option_data(create)
                data["is_default"] = None
                validate_option_rules(data, entry_errors)
                validate_metrics(data["distance_km"], data["typical_time_min"], entry_errors)
            if entry.tolls is not None:
                tolls.report_missing_nodes(entry.tolls, existing_nodes, entry_errors)
                tolls.validate_toll_structure(entry.tolls, entry_errors)
            collector.extend(entry_errors, prefix=f"options[{index}]")

    @staticmethod
    def _elect_default(
        entries: list[schemas.BulkSyncOptionInput],
        plan: SyncPlan,
        current: list[schemas.PathwayOption],
    ) -> int | None:
        for index, entry in enumerate(entries):
            if entry.is_default is True:
                return index

        # A surviving previous default keeps the flag even when listed as false.
        previous = next((option for option in current if option.is_default), None)
        if previous is not None:
            for index, option in plan.updates.items():
                if option.id == previous.id:
                    return index

        for index, entry in enumerate(entries):
            if entry.is_default is not False:
                return index
        return None

    @staticmethod
    def _check_result(
        pathway: "PathwayEntity",
        entries: list[schemas.BulkSyncOptionInput],
        plan: SyncPlan,
    ) -> None:
        """Rules on the option set the sync would leave behind."""

        if not entries:
            if pathway.active:
                raise_business_rule(
                    "options",
                    BUSINESS_RULE_VIOLATION,
                    BULK_SYNC_MESSAGES["empty_active_pathway"],
                    [],
                )
            return

        if plan.default_index is None:
            raise_business_rule(
                "options",
                BUSINESS_RULE_VIOLATION,
                BULK_SYNC_MESSAGES["no_default"],
            )

        index = plan.default_index
        entry = entries[index]
        if "active" in entry.model_fields_set:
            active = entry.active
        elif index in plan.updates:
            active = plan.updates[index].active
        else:
            active = True
        if active is False:
            collector = FieldErrorCollector()
            collector.add_error(
                f"options[{index}].active",
                BUSINESS_RULE_VIOLATION,
                OPTION_MESSAGES["default_requires_active"],
                False,
            )
            collector.raise_if_errors(BusinessRuleError)
