import pytest

from services.pathways.app.errors import NotFoundError
from services.pathways.app.pathways import PathwayFactory

HIGHWAY = {"name": "Highway", "distance_km": 150, "typical_time_min": 120}


@pytest.mark.anyio
async def test_lookups_skip_missing_and_deleted_rows(
    factory: PathwayFactory, make_pathway
) -> None:
    first = await make_pathway()
    second = await make_pathway(code="SECOND")
    default = await first.add_option(HIGHWAY)
    extra = await first.add_option({**HIGHWAY, "name": "Extra"})
    await first.remove_option(extra.id)

    pathways = await factory.pathways.find_by_ids([second.id, first.id, 999])
    options = await factory.option_factory.options.find_by_ids([default.id, extra.id])
    nodes = await factory.nodes.find_by_ids([1, 5, 42])

    assert [p.id for p in pathways] == [first.id, second.id]
    assert [o.id for o in options] == [default.id]
    assert [n.id for n in nodes] == [1, 5]
    assert (await factory.nodes.find_one(3)).city_id == 103
    with pytest.raises(NotFoundError):
        await factory.nodes.find_one(42)
    with pytest.raises(NotFoundError):
        await factory.option_factory.options.find_one(extra.id)
    with pytest.raises(NotFoundError):
        await factory.option_factory.options.delete(extra.id)


@pytest.mark.anyio
async def test_set_default_option_touches_one_pathway(
    factory: PathwayFactory, make_pathway
) -> None:
    first = await make_pathway()
    second = await make_pathway(code="SECOND")
    a = await first.add_option(HIGHWAY)
    b = await first.add_option({**HIGHWAY, "name": "B"})
    other_default = await second.add_option(HIGHWAY)
    store = factory.option_factory.options

    await store.set_default_option(first.id, b.id)

    flags = {o.id: o.is_default for o in await store.find_by_pathway_id(first.id)}
    assert flags == {a.id: False, b.id: True}
    assert (await store.find_one(other_default.id)).is_default is True
    with pytest.raises(NotFoundError):
        await store.set_default_option(second.id, a.id)
