"""Toll ordering rules for a single pathway option."""

from __future__ import annotations

from typing import Any, Sequence

from . import schemas
from .errors import (
    CONSECUTIVE_DUPLICATE,
    DUPLICATE,
    NOT_FOUND,
    OPTION_MESSAGES,
    FieldErrorCollector,
)
from .measures import calculate_pass_time
from .repositories import NodeStore


def validate_no_duplicate_toll_nodes(
    tolls: Sequence[schemas.SyncTollInput], collector: FieldErrorCollector
) -> None:
    """Every node may appear at most once in an option's toll list."""

    seen: set[int] = set()
    for index, toll in enumerate(tolls):
        if toll.node_id in seen:
            collector.add_error(
                f"tolls[{index}].node_id",
                DUPLICATE,
                OPTION_MESSAGES["duplicate_toll_node"],
                toll.node_id,
            )
        seen.add(toll.node_id)


def validate_no_consecutive_duplicates(
    tolls: Sequence[schemas.SyncTollInput], collector: FieldErrorCollector
) -> None:
    for index in range(1, len(tolls)):
        if tolls[index].node_id == tolls[index - 1].node_id:
            collector.add_error(
                f"tolls[{index}].node_id",
                CONSECUTIVE_DUPLICATE,
                OPTION_MESSAGES["consecutive_duplicate_toll_node"],
                tolls[index].node_id,
            )


def validate_toll_structure(
    tolls: Sequence[schemas.SyncTollInput], collector: FieldErrorCollector
) -> None:
    # An adjacent repeat trips both rules and is reported twice.
    validate_no_duplicate_toll_nodes(tolls, collector)
    validate_no_consecutive_duplicates(tolls, collector)


def report_missing_nodes(
    tolls: Sequence[schemas.SyncTollInput],
    existing_node_ids: set[int],
    collector: FieldErrorCollector,
) -> None:
    for index, toll in enumerate(tolls):
        if toll.node_id not in existing_node_ids:
            collector.add_error(
                f"tolls[{index}].node_id",
                NOT_FOUND,
                OPTION_MESSAGES["toll_node_not_found"],
                toll.node_id,
            )


async def validate_toll_nodes_exist(
    tolls: Sequence[schemas.SyncTollInput],
    nodes: NodeStore,
    collector: FieldErrorCollector,
) -> None:
    node_ids = {toll.node_id for toll in tolls}
    if not node_ids:
        return
    found = await nodes.find_by_ids(sorted(node_ids))
    report_missing_nodes(tolls, {node.id for node in found}, collector)


def sequence_tolls(
    option_id: int,
    avg_speed_kmh: float | None,
    tolls: Sequence[schemas.SyncTollInput],
) -> list[dict[str, Any]]:
    """Rows to insert: 1-based sequence by position, derived pass times."""

    rows = []
    for position, toll in enumerate(tolls, start=1):
        pass_time = toll.pass_time_min
        if pass_time is None:
            pass_time = calculate_pass_time(toll.distance, avg_speed_kmh)
        rows.append(
            {
                "pathway_option_id": option_id,
                "node_id": toll.node_id,
                "sequence": position,
                "pass_time_min": pass_time,
                "distance": toll.distance,
            }
        )
    return rows


def rederive_pass_times(
    tolls: Sequence[schemas.PathwayOptionToll],
    old_speed: float | None,
    new_speed: float | None,
) -> list[dict[str, Any]]:
    """Pass time updates for tolls whose stored value followed the old speed."""

    updates = []
    for toll in tolls:
        if toll.distance is None:
            continue
        # Explicit times equal to the old derived value are treated as derived.
        if toll.pass_time_min != calculate_pass_time(toll.distance, old_speed):
            continue
        new_time = calculate_pass_time(toll.distance, new_speed)
        if new_time != toll.pass_time_min:
            updates.append({"id": toll.id, "pass_time_min": new_time})
    return updates
