import pytest

from services.pathways.app import schemas
from services.pathways.app.errors import (
    CONSECUTIVE_DUPLICATE,
    DUPLICATE,
    REQUIRED,
    FieldErrorCollector,
    FieldValidationError,
    parse_payload,
)
from services.pathways.app.measures import (
    calculate_avg_speed,
    calculate_pass_time,
    round_half_up,
)
from services.pathways.app.tolls import (
    rederive_pass_times,
    sequence_tolls,
    validate_toll_structure,
)


def _tolls(*node_ids: int) -> list[schemas.SyncTollInput]:
    return [schemas.SyncTollInput(node_id=n, distance=10) for n in node_ids]


@pytest.mark.parametrize(
    ("value", "expected"), [(2.5, 3), (3.5, 4), (2.4999, 2), (0.5, 1), (74.5, 75)]
)
def test_round_half_up(value: float, expected: int) -> None:
    assert round_half_up(value) == expected


def test_avg_speed_and_pass_time() -> None:
    assert calculate_avg_speed(150, 120) == 75
    assert calculate_avg_speed(100, 60) == 100
    assert calculate_pass_time(50, 100) == 30
    assert calculate_pass_time(10, 75) == 8
    assert calculate_pass_time(10, None) is None
    assert calculate_pass_time(None, 75) is None


def test_adjacent_repeat_reports_both_rules() -> None:
    collector = FieldErrorCollector()
    validate_toll_structure(_tolls(3, 3), collector)

    assert [e.code for e in collector.errors] == [DUPLICATE, CONSECUTIVE_DUPLICATE]
    assert {e.field for e in collector.errors} == {"tolls[1].node_id"}


def test_non_adjacent_repeat_is_only_duplicate() -> None:
    collector = FieldErrorCollector()
    validate_toll_structure(_tolls(3, 4, 3), collector)

    assert [e.code for e in collector.errors] == [DUPLICATE]
    assert collector.errors[0].field == "tolls[2].node_id"


def test_sequence_follows_position_and_derives_pass_time() -> None:
    tolls = [
        schemas.SyncTollInput(node_id=3, distance=50, sequence=9),
        schemas.SyncTollInput(node_id=4, distance=75, pass_time_min=12, sequence=5),
        schemas.SyncTollInput(node_id=5, sequence=1),
    ]

    rows = sequence_tolls(7, 100, tolls)

    assert [r["sequence"] for r in rows] == [1, 2, 3]
    assert [r["node_id"] for r in rows] == [3, 4, 5]
    assert [r["pass_time_min"] for r in rows] == [30, 12, None]
    assert {r["pathway_option_id"] for r in rows} == {7}


def test_rederive_only_touches_derived_pass_times() -> None:
    derived = schemas.PathwayOptionToll(
        id=1, pathway_option_id=1, node_id=3, sequence=1, distance=75, pass_time_min=60
    )
    explicit = schemas.PathwayOptionToll(
        id=2, pathway_option_id=1, node_id=4, sequence=2, distance=75, pass_time_min=10
    )
    no_distance = schemas.PathwayOptionToll(
        id=3, pathway_option_id=1, node_id=5, sequence=3, pass_time_min=5
    )

    updates = rederive_pass_times([derived, explicit, no_distance], 75, 100)

    assert updates == [{"id": 1, "pass_time_min": 45}]


def test_collector_extend_prefixes_fields() -> None:
    inner = FieldErrorCollector()
    inner.add_error("distance_km", REQUIRED, "missing")
    outer = FieldErrorCollector()
    outer.extend(inner, prefix="options[2]")

    assert outer.has_errors
    assert outer.errors[0].field == "options[2].distance_km"
    FieldErrorCollector().raise_if_errors()


def test_parse_payload_collects_pydantic_errors() -> None:
    with pytest.raises(FieldValidationError) as exc_info:
        parse_payload(
            schemas.CreatePathwayPayload,
            {"origin_node_id": 0, "destination_node_id": 2, "code": "X"},
        )

    fields = {e.field for e in exc_info.value.field_errors}
    assert fields == {"origin_node_id", "name"}
    assert REQUIRED in exc_info.value.codes
