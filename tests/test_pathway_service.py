import pytest
from prometheus_client import REGISTRY
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.pathways.app import repositories
from services.pathways.app.errors import (
    CONSECUTIVE_DUPLICATE,
    DUPLICATE,
    NOT_FOUND,
    FieldValidationError,
    NotFoundError,
)
from services.pathways.app.service import PathwayApplicationService

HIGHWAY = {"name": "Highway", "distance_km": 150, "typical_time_min": 120}
EXPRESS = {"name": "Express", "distance_km": 100, "typical_time_min": 60}


@pytest.fixture()
def service(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> PathwayApplicationService:
    return PathwayApplicationService(sessionmaker)


async def _pathway_with_option(
    service: PathwayApplicationService, option: dict
) -> tuple[int, int]:
    pathway = await service.create_pathway(
        {"origin_node_id": 1, "destination_node_id": 2, "name": "A", "code": "A"}
    )
    result = await service.add_option_to_pathway(pathway.id, option)
    return pathway.id, result.options[0].id


def _transactions(operation: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value(
        "pathway_transactions_total", {"operation": operation, "outcome": outcome}
    )
    return value or 0.0


@pytest.mark.anyio
async def test_create_and_activate_pathway(service: PathwayApplicationService) -> None:
    committed = _transactions("create_pathway", "committed")

    pathway = await service.create_pathway(
        {
            "origin_node_id": 2,
            "destination_node_id": 5,
            "name": "Tver - Klin",
            "code": "TVR-KLN",
            "active": True,
        }
    )
    result = await service.add_option_to_pathway(pathway.id, HIGHWAY)
    activated = await service.update_pathway(pathway.id, {"active": True})

    assert pathway.active is False
    assert (pathway.origin_city_id, pathway.destination_city_id) == (102, 105)
    assert result.active is False
    assert [o.avg_speed_kmh for o in result.options] == [75]
    assert activated.active is True
    assert _transactions("create_pathway", "committed") == committed + 1


@pytest.mark.anyio
async def test_duplicate_adjacent_tolls_persist_nothing(
    service: PathwayApplicationService,
) -> None:
    pathway_id, option_id = await _pathway_with_option(service, HIGHWAY)
    rolled_back = _transactions("sync_option_tolls", "rolled_back")

    with pytest.raises(FieldValidationError) as exc_info:
        await service.sync_option_tolls(
            pathway_id,
            option_id,
            [{"node_id": 3, "distance": 10}, {"node_id": 3, "distance": 15}],
        )

    assert exc_info.value.codes == [DUPLICATE, CONSECUTIVE_DUPLICATE]
    assert await service.get_option_tolls(pathway_id, option_id) == []
    assert _transactions("sync_option_tolls", "rolled_back") == rolled_back + 1


@pytest.mark.anyio
async def test_pass_time_derived_from_option_speed(
    service: PathwayApplicationService,
) -> None:
    pathway_id, option_id = await _pathway_with_option(service, EXPRESS)

    tolls = await service.sync_option_tolls(
        pathway_id, option_id, [{"node_id": 3, "distance": 50}]
    )

    assert [(t.sequence, t.pass_time_min) for t in tolls] == [(1, 30)]


@pytest.mark.anyio
async def test_sequence_ignores_submitted_values(
    service: PathwayApplicationService,
) -> None:
    pathway_id, option_id = await _pathway_with_option(service, EXPRESS)

    await service.sync_option_tolls(
        pathway_id,
        option_id,
        [
            {"node_id": 5, "sequence": 9},
            {"node_id": 3, "sequence": 5},
            {"node_id": 4, "sequence": 1},
        ],
    )
    tolls = await service.get_option_tolls(pathway_id, option_id)

    assert [(t.node_id, t.sequence) for t in tolls] == [(5, 1), (3, 2), (4, 3)]


@pytest.mark.anyio
async def test_missing_toll_nodes_are_each_reported(
    service: PathwayApplicationService,
) -> None:
    pathway_id, option_id = await _pathway_with_option(service, EXPRESS)

    with pytest.raises(FieldValidationError) as exc_info:
        await service.sync_option_tolls(
            pathway_id, option_id, [{"node_id": 70}, {"node_id": 3}, {"node_id": 71}]
        )

    assert [(e.field, e.code) for e in exc_info.value.field_errors] == [
        ("tolls[0].node_id", NOT_FOUND),
        ("tolls[2].node_id", NOT_FOUND),
    ]


@pytest.mark.anyio
async def test_failure_mid_transaction_rolls_everything_back(
    service: PathwayApplicationService, monkeypatch: pytest.MonkeyPatch
) -> None:
    pathway_id, option_id = await _pathway_with_option(service, EXPRESS)
    await service.sync_option_tolls(pathway_id, option_id, [{"node_id": 3}])

    async def broken_create_many(self, tolls):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(
        repositories.SqlPathwayOptionTollRepository, "create_many", broken_create_many
    )

    with pytest.raises(RuntimeError, match="insert failed"):
        await service.sync_option_tolls(pathway_id, option_id, [{"node_id": 4}])

    tolls = await service.get_option_tolls(pathway_id, option_id)
    assert [t.node_id for t in tolls] == [3]


@pytest.mark.anyio
async def test_remove_and_update_option_return_fresh_snapshot(
    service: PathwayApplicationService,
) -> None:
    pathway_id, highway_id = await _pathway_with_option(service, HIGHWAY)
    result = await service.add_option_to_pathway(pathway_id, EXPRESS)
    express_id = result.options[1].id

    updated = await service.update_pathway_option(
        pathway_id, express_id, {"distance_km": 120}
    )
    assert updated.options[1].avg_speed_kmh == 120

    flipped = await service.set_default_option(pathway_id, express_id)
    assert [o.id for o in flipped.options if o.is_default] == [express_id]

    removed = await service.remove_option_from_pathway(pathway_id, highway_id)
    assert [o.id for o in removed.options] == [express_id]
    assert [o.id for o in await service.list_pathway_options(pathway_id)] == [
        express_id
    ]


@pytest.mark.anyio
async def test_unknown_pathway_is_not_found(service: PathwayApplicationService) -> None:
    with pytest.raises(NotFoundError):
        await service.find_pathway(404)
    with pytest.raises(NotFoundError):
        await service.add_option_to_pathway(404, HIGHWAY)
