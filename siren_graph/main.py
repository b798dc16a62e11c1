"""
Siren Graph
Maps the ownership and directorship network around one French company from
the Pappers registry API.
"""
import logging
import uuid
from collections import OrderedDict

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .alerts import alerted_companies, directors_with_procedures
from .config import (
    DEMO_API_KEY,
    LOG_LEVEL,
    MAX_COST_DEPTH_CAP,
    MAX_NODES_CAP,
    MAX_TRACKED_CRAWLS,
    PAPPERS_API_KEY,
)
from .crawler import CrawlHandle, NetworkCrawler, start_crawl
from .demo import DemoSource
from .models import (
    AlertsResponse,
    CrawlRequest,
    CrawlResult,
    CrawlState,
    CrawlStatusResponse,
    MandateMatch,
)
from .pappers import PappersSource
from .source import EntitySource, MalformedIdentifier, SourceFetchError, normalize_siren


def setup_logging():
    package_logger = logging.getLogger("siren_graph")
    package_logger.setLevel(LOG_LEVEL)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s"))
        package_logger.addHandler(handler)


setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Siren Graph",
    description="Feed it one SIREN, get back the companies and directors around it, with insolvency alerts.",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Background crawls started through POST /crawls, oldest first
_crawls: OrderedDict[str, CrawlHandle] = OrderedDict()


def get_source() -> EntitySource:
    if PAPPERS_API_KEY == DEMO_API_KEY:
        return DemoSource()
    return PappersSource(PAPPERS_API_KEY)


def _budgets(req: CrawlRequest) -> tuple[str, int, int]:
    try:
        root = normalize_siren(req.siren)
    except MalformedIdentifier as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    # cap to avoid runaway crawls
    return root, min(req.max_cost_depth, MAX_COST_DEPTH_CAP), min(req.max_nodes, MAX_NODES_CAP)


def _register(crawl_id: str, handle: CrawlHandle) -> None:
    _crawls[crawl_id] = handle
    # Finished crawls hold a whole graph; forget the oldest ones past the limit
    finished = [cid for cid, h in _crawls.items() if h.done]
    while len(_crawls) > MAX_TRACKED_CRAWLS and finished:
        evicted = finished.pop(0)
        del _crawls[evicted]
        logger.info("Dropped finished crawl %s", evicted)


def _get_handle(crawl_id: str) -> CrawlHandle:
    handle = _crawls.get(crawl_id)
    if handle is None:
        raise HTTPException(status_code=404, detail=f"Unknown crawl {crawl_id}")
    return handle


async def _status(crawl_id: str, handle: CrawlHandle) -> CrawlStatusResponse:
    result = None
    state = CrawlState.RUNNING
    if handle.done:
        result = await handle.result()
        state = CrawlState.CANCELLED if result.cancelled else CrawlState.DONE
    return CrawlStatusResponse(
        crawl_id=crawl_id,
        root_siren=handle.root_siren,
        state=state,
        stats=handle.stats,
        result=result,
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/crawl", response_model=CrawlResult)
async def run_crawl(req: CrawlRequest, source: EntitySource = Depends(get_source)):
    """Crawl to completion and return the whole graph in one response."""
    root, max_cost_depth, max_nodes = _budgets(req)
    return await NetworkCrawler(source).crawl(root, max_cost_depth, max_nodes)


@app.post("/crawls", response_model=CrawlStatusResponse, status_code=202)
async def create_crawl(req: CrawlRequest, source: EntitySource = Depends(get_source)):
    """Start a crawl in the background; poll GET /crawls/{id} for progress."""
    root, max_cost_depth, max_nodes = _budgets(req)
    crawl_id = uuid.uuid4().hex
    _register(crawl_id, start_crawl(source, root, max_cost_depth, max_nodes))
    logger.info("Started crawl %s from %s", crawl_id, root)
    return await _status(crawl_id, _crawls[crawl_id])


@app.get("/crawls/{crawl_id}", response_model=CrawlStatusResponse)
async def get_crawl(crawl_id: str):
    return await _status(crawl_id, _get_handle(crawl_id))


@app.delete("/crawls/{crawl_id}", response_model=CrawlStatusResponse)
async def cancel_crawl(crawl_id: str):
    """Request cancellation. Takes effect before the next fetch; results so far are kept."""
    handle = _get_handle(crawl_id)
    handle.cancel()
    return await _status(crawl_id, handle)


@app.get("/crawls/{crawl_id}/alerts", response_model=AlertsResponse)
async def get_alerts(crawl_id: str):
    """Companies under a collective procedure, and the directors linked to them."""
    handle = _get_handle(crawl_id)
    if not handle.done:
        raise HTTPException(status_code=409, detail=f"Crawl {crawl_id} is still running")
    result = await handle.result()
    return AlertsResponse(
        crawl_id=crawl_id,
        companies=alerted_companies(result.nodes, result.edges),
        directors=directors_with_procedures(result.nodes, result.edges),
    )


@app.get("/mandates", response_model=list[MandateMatch])
async def search_mandates(
    last_name: str,
    first_name: str,
    birth_date: str | None = None,
    source: EntitySource = Depends(get_source),
):
    """Companies where a person holds a mandate."""
    try:
        return await source.search_mandates(last_name, first_name, birth_date)
    except SourceFetchError as exc:
        raise HTTPException(status_code=502, detail=f"Registry error ({exc.status_code}): {exc.message}")
