from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from services.pathways.app.main import app
from src.common import db
from src.common.settings import Settings


@pytest.fixture()
def client(memory_settings: Settings, node_seeder) -> Iterator[TestClient]:
    with TestClient(app) as client:
        client.portal.call(node_seeder)
        yield client
        client.portal.call(db.dispose_engine)


def _create_pathway(client: TestClient) -> dict:
    resp = client.post(
        "/pathways",
        json={
            "origin_node_id": 1,
            "destination_node_id": 3,
            "name": "Moscow - Klin",
            "code": "MOW-KLN",
        },
    )
    assert resp.status_code == 201
    return resp.json()


def test_pathway_lifecycle(client: TestClient) -> None:
    pathway = _create_pathway(client)
    assert pathway["active"] is False
    assert pathway["destination_city_id"] == 103

    resp = client.post(
        f"/pathways/{pathway['id']}/options",
        json={"name": "Highway", "distance_km": 150, "typical_time_min": 120},
    )
    assert resp.status_code == 201
    option = resp.json()["options"][0]
    assert option["avg_speed_kmh"] == 75
    assert option["is_default"] is True

    resp = client.patch(f"/pathways/{pathway['id']}", json={"active": True})
    assert resp.status_code == 200
    assert resp.json()["active"] is True

    resp = client.put(
        f"/pathways/{pathway['id']}/options/{option['id']}/tolls",
        json={"tolls": [{"node_id": 4, "distance": 50}, {"node_id": 5}]},
    )
    assert resp.status_code == 200
    assert [t["sequence"] for t in resp.json()] == [1, 2]
    assert resp.json()[0]["pass_time_min"] == 40

    resp = client.get(f"/pathways/{pathway['id']}")
    assert resp.status_code == 200
    assert [o["id"] for o in resp.json()["options"]] == [option["id"]]


def test_domain_errors_map_to_status_codes(client: TestClient) -> None:
    pathway = _create_pathway(client)
    resp = client.post(
        f"/pathways/{pathway['id']}/options",
        json={"name": "Highway", "distance_km": 150, "typical_time_min": 120},
    )
    option_id = resp.json()["options"][0]["id"]

    resp = client.delete(f"/pathways/{pathway['id']}/options/{option_id}")
    assert resp.status_code == 409
    assert resp.json()["field_errors"][0]["code"] == "BUSINESS_RULE_VIOLATION"

    resp = client.put(
        f"/pathways/{pathway['id']}/options/{option_id}/tolls",
        json={"tolls": [{"node_id": 2}, {"node_id": 2}]},
    )
    assert resp.status_code == 422
    codes = [e["code"] for e in resp.json()["field_errors"]]
    assert codes == ["DUPLICATE", "CONSECUTIVE_DUPLICATE"]

    resp = client.post(
        f"/pathways/{pathway['id']}/options", json={"name": "No metrics"}
    )
    assert resp.status_code == 422
    assert len(resp.json()["field_errors"]) == 2

    resp = client.get("/pathways/999")
    assert resp.status_code == 404
    assert resp.json()["entity"] == "Pathway"


def test_bulk_sync_over_http(client: TestClient) -> None:
    pathway = _create_pathway(client)
    resp = client.post(
        f"/pathways/{pathway['id']}/options",
        json={"name": "Highway", "distance_km": 150, "typical_time_min": 120},
    )
    old = resp.json()["options"][0]

    resp = client.put(
        f"/pathways/{pathway['id']}/options",
        json={
            "options": [
                {"id": old["id"], "is_default": False},
                {
                    "name": "New",
                    "distance_km": 60,
                    "typical_time_min": 60,
                    "is_default": True,
                },
            ]
        },
    )

    assert resp.status_code == 200
    defaults = {o["name"]: o["is_default"] for o in resp.json()["options"]}
    assert defaults == {"Highway": False, "New": True}

    client.patch(f"/pathways/{pathway['id']}", json={"active": True})
    resp = client.put(f"/pathways/{pathway['id']}/options", json={"options": []})
    assert resp.status_code == 409
    resp = client.get(f"/pathways/{pathway['id']}/options")
    assert len(resp.json()) == 2


def test_health_endpoints(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/readyz").json() == {"status": "ready"}
