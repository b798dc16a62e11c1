import asyncio
import logging

import pytest
from httpx import ASGITransport, AsyncClient

from fakes import ROOT, FakeSource, company, director, sub
from siren_graph import main
from siren_graph.main import app, get_source
from siren_graph.models import CollectiveProcedure, MandateMatch


class GatedSource(FakeSource):
    """Holds every fetch until the test opens the gate."""

    def __init__(self, records):
        super().__init__(records)
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def fetch_entity(self, siren):
        self.started.set()
        await self.gate.wait()
        return await super().fetch_entity(siren)


@pytest.fixture
def records():
    return [
        company(ROOT, "GOOGLE FRANCE", reps=[director("DUPONT", "Jean")], subs=[sub("111111111", "ALPHA TECH")]),
        company(
            "111111111",
            "ALPHA TECH",
            reps=[director("MARTIN", "Claire", role="Gérant")],
            procedures=[CollectiveProcedure(type="Liquidation judiciaire")],
        ),
    ]


@pytest.fixture
def use_source():
    def install(source):
        app.dependency_overrides[get_source] = lambda: source
        return source

    yield install
    app.dependency_overrides.clear()
    main._crawls.clear()


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.anyio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_crawl_returns_graph(client: AsyncClient, use_source, records):
    use_source(FakeSource(records))

    resp = await client.post("/crawl", json={"siren": ROOT, "max_cost_depth": 1, "max_nodes": 10})

    assert resp.status_code == 200
    data = resp.json()
    assert data["stats"]["scanned"] == 2
    assert data["stats"]["people_found"] == 2
    assert {n["id"] for n in data["nodes"]} == {ROOT, "111111111", "DUPONT_JEAN_1970-01-01", "MARTIN_CLAIRE_1970-01-01"}
    free = next(e for e in data["edges"] if e["cost"] == "FREE")
    assert [s["name"] for s in free["path"]] == ["GOOGLE FRANCE", "ALPHA TECH"]


@pytest.mark.anyio
async def test_crawl_rejects_malformed_root(client: AsyncClient, use_source, records):
    source = use_source(FakeSource(records))

    resp = await client.post("/crawl", json={"siren": "12AB"})

    assert resp.status_code == 400
    assert source.fetched == []


@pytest.mark.anyio
async def test_crawl_rejects_negative_budget(client: AsyncClient, use_source, records):
    use_source(FakeSource(records))

    resp = await client.post("/crawl", json={"siren": ROOT, "max_nodes": 0})

    assert resp.status_code == 422


@pytest.mark.anyio
async def test_background_crawl_and_alerts(client: AsyncClient, use_source, records):
    use_source(FakeSource(records))

    resp = await client.post("/crawls", json={"siren": ROOT, "max_cost_depth": 1, "max_nodes": 10})
    assert resp.status_code == 202
    crawl_id = resp.json()["crawl_id"]
    await main._crawls[crawl_id].result()

    resp = await client.get(f"/crawls/{crawl_id}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["state"] == "done"
    assert data["stats"]["scanned"] == 2
    assert len(data["result"]["nodes"]) == 4

    resp = await client.get(f"/crawls/{crawl_id}/alerts")
    assert resp.status_code == 200
    alerts = resp.json()
    assert [c["node"]["id"] for c in alerts["companies"]] == ["111111111"]
    assert [d["director"]["id"] for d in alerts["directors"]] == ["MARTIN_CLAIRE_1970-01-01"]


@pytest.mark.anyio
async def test_cancel_background_crawl(client: AsyncClient, use_source, records):
    source = use_source(GatedSource(records))

    resp = await client.post("/crawls", json={"siren": ROOT})
    crawl_id = resp.json()["crawl_id"]
    assert resp.json()["state"] == "running"
    await source.started.wait()

    resp = await client.get(f"/crawls/{crawl_id}/alerts")
    assert resp.status_code == 409

    resp = await client.delete(f"/crawls/{crawl_id}")
    assert resp.status_code == 200

    source.gate.set()
    result = await main._crawls[crawl_id].result()
    assert result.cancelled is True
    assert result.stats.scanned == 1

    resp = await client.get(f"/crawls/{crawl_id}")
    assert resp.json()["state"] == "cancelled"


@pytest.mark.anyio
async def test_unknown_crawl(client: AsyncClient):
    assert (await client.get("/crawls/nope")).status_code == 404
    assert (await client.delete("/crawls/nope")).status_code == 404


@pytest.mark.anyio
async def test_mandates(client: AsyncClient, use_source):
    use_source(FakeSource(
        [],
        mandates={("DUPONT", "Jean"): [MandateMatch(siren="111111111", name="ALPHA TECH")]},
        search_failures={("BLANC", "Anne")},
    ))

    resp = await client.get("/mandates", params={"last_name": "DUPONT", "first_name": "Jean"})
    assert resp.status_code == 200
    assert resp.json() == [{"siren": "111111111", "name": "ALPHA TECH"}]

    resp = await client.get("/mandates", params={"last_name": "BLANC", "first_name": "Anne"})
    assert resp.status_code == 502


@pytest.mark.anyio
async def test_oldest_finished_crawls_are_dropped(client: AsyncClient, use_source, records, monkeypatch):
    monkeypatch.setattr(main, "MAX_TRACKED_CRAWLS", 2)
    use_source(FakeSource(records))

    ids = []
    for _ in range(3):
        resp = await client.post("/crawls", json={"siren": ROOT})
        ids.append(resp.json()["crawl_id"])
        await main._crawls[ids[-1]].result()

    assert list(main._crawls) == ids[1:]
    assert (await client.get(f"/crawls/{ids[0]}")).status_code == 404
    assert (await client.get(f"/crawls/{ids[2]}")).json()["state"] == "done"


@pytest.mark.anyio
async def test_running_crawls_are_never_dropped(client: AsyncClient, use_source, records, monkeypatch):
    monkeypatch.setattr(main, "MAX_TRACKED_CRAWLS", 1)
    source = use_source(GatedSource(records))

    first = (await client.post("/crawls", json={"siren": ROOT})).json()["crawl_id"]
    second = (await client.post("/crawls", json={"siren": ROOT})).json()["crawl_id"]

    assert list(main._crawls) == [first, second]
    source.gate.set()
    await main._crawls[first].result()
    await main._crawls[second].result()


def test_package_logger_has_a_handler():
    package_logger = logging.getLogger("siren_graph")

    assert package_logger.handlers
    assert package_logger.level == logging.getLevelName(main.LOG_LEVEL)
