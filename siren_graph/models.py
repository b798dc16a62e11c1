from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_MAX_COST_DEPTH, DEFAULT_MAX_NODES


class EntityStatus(str, Enum):
    ACTIVE = "active"      # registered
    CLOSED = "closed"      # deregistered ("radiée")
    UNKNOWN = "unknown"    # placeholder, record not fetched yet


class NodeKind(str, Enum):
    ROOT = "ROOT"
    COMPANY = "COMPANY"
    PERSON = "PERSON"


class LinkCost(str, Enum):
    FREE = "FREE"        # ownership descent, company -> controlled company
    COSTLY = "COSTLY"    # any hop through a representative or a person


# ---------------------------------------------------------------------------
# Registry records
# ---------------------------------------------------------------------------

class Location(BaseModel):
    city: str | None = None
    postal_code: str | None = None


class CollectiveProcedure(BaseModel):
    type: str                # e.g. "Liquidation judiciaire"
    start_date: str | None = None
    end_date: str | None = None


class Publication(BaseModel):
    type: str | None = None      # e.g. "Procédure collective", "Création"
    nature: str | None = None    # e.g. "Jugement de liquidation judiciaire"
    family: str | None = None    # e.g. "Extrait de jugement"
    date: str | None = None
    judgment_date: str | None = None


class NaturalPerson(BaseModel):
    kind: Literal["natural"] = "natural"
    last_name: str | None = None
    first_name: str | None = None
    full_name: str | None = None
    birth_date: str | None = None
    role: str | None = None
    current: bool = True

    @property
    def label(self) -> str:
        if self.full_name:
            return self.full_name
        return " ".join(p for p in (self.first_name, self.last_name) if p) or "Unknown"


class LegalPerson(BaseModel):
    kind: Literal["legal"] = "legal"
    siren: str | None = None
    name: str | None = None
    role: str | None = None
    current: bool = True

    @property
    def label(self) -> str:
        return self.name or self.siren or "Unknown"


Representative = Annotated[Union[NaturalPerson, LegalPerson], Field(discriminator="kind")]


class ControlledEntity(BaseModel):
    siren: str | None = None
    name: str | None = None
    role: str | None = None


class EntityRecord(BaseModel):
    siren: str
    name: str
    legal_form: str | None = None
    status: EntityStatus = EntityStatus.UNKNOWN
    location: Location | None = None
    created_on: str | None = None
    representatives: list[Representative] = []
    controlled: list[ControlledEntity] = []
    procedures: list[CollectiveProcedure] = []
    publications: list[Publication] = []


class MandateMatch(BaseModel):
    siren: str
    name: str


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

class PathStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: NodeKind
    relation: str | None = None   # role linking this step to the previous one


class GraphNode(BaseModel):
    id: str                  # SIREN for companies, name+birth key for people
    label: str
    kind: NodeKind
    status: EntityStatus = EntityStatus.UNKNOWN
    degree: int = 0          # cost-depth at first discovery
    data: dict[str, Any] | None = None
    has_alert: bool = False
    procedures: list[CollectiveProcedure] = []


class GraphEdge(BaseModel):
    source: str
    target: str
    label: str
    active: bool = True
    cost: LinkCost
    path: tuple[PathStep, ...] = ()


class CrawlError(BaseModel):
    id: str
    code: int                # HTTP status, 0 when no response was received
    message: str
    timestamp: datetime


class CrawlStats(BaseModel):
    scanned: int = 0
    people_found: int = 0
    edges_found: int = 0
    cost_depth_reached: int = 0
    errors: list[CrawlError] = []
    data_source_calls: int = 0   # entity fetches issued
    mandate_searches: int = 0    # reverse lookups issued


class CrawlResult(BaseModel):
    nodes: list[GraphNode]
    edges: list[GraphEdge]
    stats: CrawlStats
    cancelled: bool = False


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

class CrawlRequest(BaseModel):
    siren: str
    max_cost_depth: int = Field(default=DEFAULT_MAX_COST_DEPTH, ge=0)   # person-mediated hops
    max_nodes: int = Field(default=DEFAULT_MAX_NODES, ge=1)      # entities fetched


class CrawlState(str, Enum):
    RUNNING = "running"
    DONE = "done"
    CANCELLED = "cancelled"


class CrawlStatusResponse(BaseModel):
    crawl_id: str
    root_siren: str
    state: CrawlState
    stats: CrawlStats
    result: CrawlResult | None = None


class AlertedCompany(BaseModel):
    node: GraphNode
    path: tuple[PathStep, ...] = ()


class FlaggedDirector(BaseModel):
    director: GraphNode
    companies: list[GraphNode]


class AlertsResponse(BaseModel):
    crawl_id: str
    companies: list[AlertedCompany]
    directors: list[FlaggedDirector]
