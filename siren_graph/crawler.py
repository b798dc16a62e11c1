"""
Hybrid-cost breadth-first crawl over the company registry.

Two budgets bound a run, independently:
  - max_nodes: entities actually fetched. A failed fetch costs nothing.
  - max_cost_depth: hops made through a representative or a natural person.
    Ownership descent (company -> directed company) is free, so a corporate
    tree is mapped exhaustively while jumps through shared directors, which
    fan out across unrelated companies, stay bounded.

The queue is strictly FIFO and identifiers are marked visited when they are
enqueued, so each SIREN is fetched at most once per run. An entity still
waiting in the queue takes the cheapest cost depth any later route offers;
controlled entities are handled before representatives so free routes claim
their depth first. Cancellation is
polled before every dequeue; an in-flight fetch always completes first.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from .alerts import detect_procedures, fold_text
from .models import (
    ControlledEntity,
    CrawlError,
    CrawlResult,
    CrawlStats,
    EntityRecord,
    EntityStatus,
    GraphEdge,
    GraphNode,
    LegalPerson,
    LinkCost,
    MandateMatch,
    NaturalPerson,
    NodeKind,
    PathStep,
)
from .source import (
    EntitySource,
    SourceFetchError,
    clean_siren,
    normalize_siren,
    representative_key,
)

logger = logging.getLogger(__name__)

AUDITOR_ROLES = ("commissaire aux comptes", "statutory auditor")
GENERIC_RELATION = "Mandataire"

ProgressCallback = Callable[[CrawlStats], None]
Path = tuple[PathStep, ...]


@dataclass(frozen=True)
class QueueItem:
    siren: str
    cost_depth: int
    path: Path = ()               # root .. parent, excluding this entity
    relation: str | None = None   # role that led here, None for the root


def is_auditor(role: str | None) -> bool:
    folded = fold_text(role)
    return any(r in folded for r in AUDITOR_ROLES)


def placeholder_status(name: str | None) -> EntityStatus:
    # Directed-company lists only carry a name; "(Radiée)" is the only hint
    if "(radiee)" in fold_text(name):
        return EntityStatus.CLOSED
    return EntityStatus.UNKNOWN


class NetworkCrawler:
    """One crawl run. Build a fresh instance per run; state is never shared."""

    def __init__(self, source: EntitySource) -> None:
        self.source = source
        self._root = ""
        self._max_cost_depth = 0
        self._max_nodes = 0
        self._queue: deque[str] = deque()
        self._pending: dict[str, QueueItem] = {}
        self._visited: set[str] = set()
        self._searched: set[str] = set()
        self._nodes: dict[str, GraphNode] = {}
        self._edges: list[GraphEdge] = []
        self._errors: list[CrawlError] = []
        self._scanned = 0
        self._calls = 0
        self._searches = 0
        self._depth_reached = 0
        self._started = False
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def stats(self) -> CrawlStats:
        return CrawlStats(
            scanned=self._scanned,
            people_found=sum(1 for n in self._nodes.values() if n.kind == NodeKind.PERSON),
            edges_found=len(self._edges),
            cost_depth_reached=self._depth_reached,
            errors=list(self._errors),
            data_source_calls=self._calls,
            mandate_searches=self._searches,
        )

    async def crawl(
        self,
        root_siren: str,
        max_cost_depth: int,
        max_nodes: int,
        on_progress: ProgressCallback | None = None,
    ) -> CrawlResult:
        if self._started:
            raise RuntimeError("NetworkCrawler runs a single crawl; create a new instance")
        self._started = True
        self._root = clean_siren(root_siren)
        self._max_cost_depth = max_cost_depth
        self._max_nodes = max_nodes

        self._queue.append(self._root)
        self._pending[self._root] = QueueItem(self._root, 0)
        self._visited.add(self._root)
        logger.info(
            "Crawl started from %s (max_cost_depth=%d, max_nodes=%d)",
            self._root, max_cost_depth, max_nodes,
        )

        while self._queue:
            if self._cancelled:
                logger.info("Crawl from %s cancelled after %d entities", self._root, self._scanned)
                break
            # Checked before dequeuing so no call is spent past the budget
            if self._scanned >= max_nodes:
                logger.info("Node budget of %d reached, %d items left in queue", max_nodes, len(self._queue))
                break

            item = self._pending.pop(self._queue.popleft())
            self._depth_reached = max(self._depth_reached, item.cost_depth)
            if on_progress is not None:
                on_progress(self.stats())

            record = await self._fetch(item.siren)
            if record is None:
                continue
            self._scanned += 1
            await self._process(item, record)

        stats = self.stats()
        logger.info(
            "Crawl from %s finished: %d scanned, %d nodes, %d edges, %d errors",
            self._root, stats.scanned, len(self._nodes), stats.edges_found, len(stats.errors),
        )
        return CrawlResult(
            nodes=list(self._nodes.values()),
            edges=list(self._edges),
            stats=stats,
            cancelled=self._cancelled,
        )

    # ------------------------------------------------------------------
    # Fetching and bookkeeping
    # ------------------------------------------------------------------

    async def _fetch(self, siren: str) -> EntityRecord | None:
        try:
            siren = normalize_siren(siren)
            self._calls += 1
            return await self.source.fetch_entity(siren)
        except SourceFetchError as exc:
            self._record_error(siren, exc)
            return None

    def _record_error(self, ident: str, exc: SourceFetchError) -> None:
        logger.warning("Registry call failed for %s (%d): %s", ident, exc.status_code, exc.message)
        self._errors.append(CrawlError(
            id=ident,
            code=exc.status_code,
            message=exc.message,
            timestamp=datetime.now(timezone.utc),
        ))

    def _budget_left(self) -> bool:
        return self._scanned < self._max_nodes

    def _enqueue(self, siren: str, cost_depth: int, path: Path, relation: str | None) -> None:
        if cost_depth > self._max_cost_depth:
            return
        pending = self._pending.get(siren)
        if pending is not None:
            # Not fetched yet: a cheaper route replaces the queued one in place
            if cost_depth < pending.cost_depth:
                self._pending[siren] = QueueItem(siren, cost_depth, path, relation)
                self._lower_degree(siren, cost_depth)
                logger.debug("Requeued %s at cost depth %d (was %d)", siren, cost_depth, pending.cost_depth)
            return
        if siren in self._visited or not self._budget_left():
            return
        self._visited.add(siren)
        self._queue.append(siren)
        self._pending[siren] = QueueItem(siren, cost_depth, path, relation)
        self._lower_degree(siren, cost_depth)
        logger.debug("Queued %s at cost depth %d", siren, cost_depth)

    def _lower_degree(self, node_id: str, cost_depth: int) -> None:
        # A placeholder first reached through a costly hop
        node = self._nodes.get(node_id)
        if node is not None:
            node.degree = min(node.degree, cost_depth)

    def _ensure_node(
        self,
        node_id: str,
        label: str,
        kind: NodeKind,
        degree: int,
        data: NaturalPerson | LegalPerson | ControlledEntity | MandateMatch,
        status: EntityStatus,
    ) -> GraphNode:
        node = self._nodes.get(node_id)
        if node is None:
            node = GraphNode(
                id=node_id,
                label=label,
                kind=kind,
                status=status,
                degree=degree,
                data=data.model_dump(mode="json"),
            )
            self._nodes[node_id] = node
        return node

    def _upsert_entity(self, item: QueueItem, record: EntityRecord) -> GraphNode:
        kind = NodeKind.ROOT if item.siren == self._root else NodeKind.COMPANY
        data = record.model_dump(mode="json")
        node = self._nodes.get(item.siren)
        if node is None:
            node = GraphNode(
                id=item.siren,
                label=record.name,
                kind=kind,
                status=record.status,
                degree=item.cost_depth,
                data=data,
            )
            self._nodes[item.siren] = node
        else:
            # Placeholder created by a parent: refresh, keep the first degree
            node.label = record.name
            node.status = record.status
            node.data = data
            if node.kind != NodeKind.ROOT:
                node.kind = kind
        return node

    def _add_edge(
        self,
        source: str,
        target: str,
        label: str,
        cost: LinkCost,
        path: Path,
        active: bool = True,
    ) -> None:
        self._edges.append(GraphEdge(
            source=source,
            target=target,
            label=label,
            active=active,
            cost=cost,
            path=path,
        ))

    # ------------------------------------------------------------------
    # One fetched entity
    # ------------------------------------------------------------------

    async def _process(self, item: QueueItem, record: EntityRecord) -> None:
        node = self._upsert_entity(item, record)
        path = item.path + (PathStep(name=node.label, kind=node.kind, relation=item.relation),)

        procedures = detect_procedures(record)
        node.has_alert = bool(procedures)
        node.procedures = procedures

        # Free links first, so costly ones never claim a controlled entity
        for sub in record.controlled:
            if sub.siren:
                self._add_controlled(item, node, sub, path)

        for rep in record.representatives:
            if is_auditor(rep.role):
                continue
            if isinstance(rep, NaturalPerson):
                await self._add_natural_person(item, node, rep, path)
            else:
                self._add_legal_person(item, node, rep, path)

    def _add_legal_person(self, item: QueueItem, node: GraphNode, rep: LegalPerson, path: Path) -> None:
        rep_id = representative_key(rep)
        rep_node = self._ensure_node(
            rep_id,
            rep.label,
            NodeKind.COMPANY,
            min(item.cost_depth + 1, self._max_cost_depth),
            rep,
            EntityStatus.UNKNOWN,
        )
        step = PathStep(name=rep_node.label, kind=rep_node.kind, relation=rep.role)
        self._add_edge(rep_id, node.id, rep.role or GENERIC_RELATION, LinkCost.COSTLY, path + (step,), rep.current)
        if rep.siren:
            self._enqueue(rep.siren, item.cost_depth + 1, path, rep.role)

    async def _add_natural_person(self, item: QueueItem, node: GraphNode, rep: NaturalPerson, path: Path) -> None:
        if item.cost_depth >= self._max_cost_depth:
            return
        person_id = representative_key(rep)
        person = self._ensure_node(
            person_id,
            rep.label,
            NodeKind.PERSON,
            item.cost_depth + 1,
            rep,
            EntityStatus.ACTIVE,
        )
        person_path = path + (PathStep(name=person.label, kind=NodeKind.PERSON, relation=rep.role),)
        self._add_edge(person_id, node.id, rep.role or GENERIC_RELATION, LinkCost.COSTLY, person_path, rep.current)

        if not (rep.last_name and rep.first_name) or person_id in self._searched or not self._budget_left():
            return
        self._searched.add(person_id)
        await self._expand_mandates(item, node, rep, person_id, person_path)

    async def _expand_mandates(
        self,
        item: QueueItem,
        node: GraphNode,
        rep: NaturalPerson,
        person_id: str,
        person_path: Path,
    ) -> None:
        """Reverse lookup: other companies run by this person, one cost unit away."""
        self._searches += 1
        try:
            matches = await self.source.search_mandates(rep.last_name, rep.first_name, rep.birth_date)
        except SourceFetchError as exc:
            self._record_error(person_id, exc)
            return

        depth = item.cost_depth + 1
        for match in matches:
            if match.siren == node.id:
                continue
            target = self._ensure_node(
                match.siren,
                match.name,
                NodeKind.COMPANY,
                depth,
                match,
                placeholder_status(match.name),
            )
            step = PathStep(name=target.label, kind=target.kind, relation=GENERIC_RELATION)
            self._add_edge(person_id, match.siren, GENERIC_RELATION, LinkCost.COSTLY, person_path + (step,))
            self._enqueue(match.siren, depth, person_path, GENERIC_RELATION)

    def _add_controlled(self, item: QueueItem, node: GraphNode, sub: ControlledEntity, path: Path) -> None:
        relation = sub.role or GENERIC_RELATION
        label = sub.name or sub.siren
        target = self._ensure_node(
            sub.siren,
            label,
            NodeKind.COMPANY,
            item.cost_depth,
            sub,
            placeholder_status(label),
        )
        step = PathStep(name=target.label, kind=target.kind, relation=relation)
        self._add_edge(node.id, sub.siren, relation, LinkCost.FREE, path + (step,))
        # Ownership descent never increases cost depth
        self._enqueue(sub.siren, item.cost_depth, path, relation)


class CrawlHandle:
    """
    Caller-facing view of a crawl running as an asyncio task.

    Must be created from inside a running event loop (see start_crawl).
    """

    def __init__(self, crawler: NetworkCrawler, root_siren: str, max_cost_depth: int, max_nodes: int) -> None:
        self.crawler = crawler
        self.root_siren = clean_siren(root_siren)
        self.stats = CrawlStats()
        self._listeners: list[ProgressCallback] = []
        self._task = asyncio.create_task(
            crawler.crawl(root_siren, max_cost_depth, max_nodes, self._publish)
        )

    def _publish(self, stats: CrawlStats) -> None:
        self.stats = stats
        for listener in list(self._listeners):
            listener(stats)

    def on_progress(self, callback: ProgressCallback) -> ProgressCallback:
        self._listeners.append(callback)
        return callback

    def cancel(self) -> None:
        self.crawler.cancel()

    @property
    def done(self) -> bool:
        return self._task.done()

    async def result(self) -> CrawlResult:
        result = await self._task
        self.stats = result.stats
        return result


def start_crawl(source: EntitySource, root_siren: str, max_cost_depth: int, max_nodes: int) -> CrawlHandle:
    return CrawlHandle(NetworkCrawler(source), root_siren, max_cost_depth, max_nodes)
