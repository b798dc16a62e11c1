"""
Insolvency alerts.

A company is flagged when its record lists a collective procedure whose type
names one of the insolvency regimes below. When the record carries no such
entry, BODACC publications tagged "procédure collective" are used instead.
"""
import unicodedata

from .models import (
    AlertedCompany,
    CollectiveProcedure,
    EntityRecord,
    FlaggedDirector,
    GraphEdge,
    GraphNode,
    NodeKind,
)

PROCEDURE_KEYWORDS = (
    "conciliation",
    "sauvegarde",
    "redressement",
    "administration judiciaire",
    "liquidation",
    "safeguard",
    "receivership",
    "court supervision",
)


def fold_text(text: str | None) -> str:
    """Lower-case, accent-free form used for keyword matching."""
    if not text:
        return ""
    return unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode().lower()


def matches_procedure(text: str | None) -> bool:
    folded = fold_text(text)
    return any(k in folded for k in PROCEDURE_KEYWORDS)


def detect_procedures(record: EntityRecord) -> list[CollectiveProcedure]:
    """Collective procedures on a record that match the insolvency keywords."""
    found = [p for p in record.procedures if matches_procedure(p.type)]
    if found:
        return found

    for pub in record.publications:
        if "procedure collective" not in fold_text(pub.type):
            continue
        label = next((t for t in (pub.nature, pub.family) if matches_procedure(t)), None)
        if label:
            found.append(CollectiveProcedure(type=label, start_date=pub.judgment_date or pub.date))
    return found


# ---------------------------------------------------------------------------
# Reports over a finished graph
# ---------------------------------------------------------------------------

def _is_alerted(node: GraphNode) -> bool:
    return node.kind in (NodeKind.COMPANY, NodeKind.ROOT) and (node.has_alert or bool(node.procedures))


def alerted_companies(nodes: list[GraphNode], edges: list[GraphEdge]) -> list[AlertedCompany]:
    """Companies under a collective procedure, each with the path that reached it."""
    out = []
    for node in nodes:
        if not _is_alerted(node):
            continue
        edge = next((e for e in edges if e.target == node.id), None)
        if edge is None:
            edge = next((e for e in edges if e.source == node.id), None)
        out.append(AlertedCompany(node=node, path=edge.path if edge else ()))
    return out


def directors_with_procedures(nodes: list[GraphNode], edges: list[GraphEdge]) -> list[FlaggedDirector]:
    """Natural persons linked, in either direction, to at least one alerted company."""
    alerted = {n.id: n for n in nodes if _is_alerted(n)}
    out = []
    for person in nodes:
        if person.kind != NodeKind.PERSON:
            continue
        linked: dict[str, GraphNode] = {}
        for edge in edges:
            if edge.source == person.id and edge.target in alerted:
                linked.setdefault(edge.target, alerted[edge.target])
            elif edge.target == person.id and edge.source in alerted:
                linked.setdefault(edge.source, alerted[edge.source])
        if linked:
            out.append(FlaggedDirector(director=person, companies=list(linked.values())))
    return out
