from fakes import company
from siren_graph.alerts import (
    alerted_companies,
    detect_procedures,
    directors_with_procedures,
    matches_procedure,
)
from siren_graph.models import (
    CollectiveProcedure,
    GraphEdge,
    GraphNode,
    LinkCost,
    NodeKind,
    PathStep,
    Publication,
)


def test_keywords_match_regardless_of_case_and_accents():
    assert matches_procedure("Liquidation judiciaire")
    assert matches_procedure("PROCÉDURE DE SAUVEGARDE")
    assert matches_procedure("Ouverture d'une conciliation")
    assert matches_procedure("Receivership")
    assert not matches_procedure("Plan de cession")
    assert not matches_procedure(None)


def test_direct_procedures_take_precedence_over_publications():
    record = company("111111111", "ALPHA", procedures=[
        CollectiveProcedure(type="Redressement judiciaire"),
    ], publications=[
        Publication(type="Procédure collective", nature="Jugement de liquidation judiciaire"),
    ])

    assert [p.type for p in detect_procedures(record)] == ["Redressement judiciaire"]


def test_publications_are_the_fallback_signal():
    record = company("111111111", "ALPHA", publications=[
        Publication(type="Création", nature="Immatriculation"),
        Publication(type="Procédure collective", nature="Jugement d'ouverture", family="Extrait de jugement"),
        Publication(
            type="Procédure collective",
            nature="Jugement d'ouverture d'une procédure de sauvegarde",
            date="2024-05-02",
            judgment_date="2024-04-28",
        ),
    ])

    found = detect_procedures(record)

    assert len(found) == 1
    assert found[0].type == "Jugement d'ouverture d'une procédure de sauvegarde"
    assert found[0].start_date == "2024-04-28"


def test_no_procedures():
    assert detect_procedures(company("111111111", "ALPHA")) == []


def _graph():
    root = GraphNode(id="1", label="ROOT CO", kind=NodeKind.ROOT)
    sick = GraphNode(
        id="2",
        label="SICK CO",
        kind=NodeKind.COMPANY,
        has_alert=True,
        procedures=[CollectiveProcedure(type="Liquidation judiciaire")],
    )
    healthy = GraphNode(id="3", label="FINE CO", kind=NodeKind.COMPANY)
    anne = GraphNode(id="P1", label="Anne BLANC", kind=NodeKind.PERSON)
    paul = GraphNode(id="P2", label="Paul NOIR", kind=NodeKind.PERSON)
    path = (
        PathStep(name="ROOT CO", kind=NodeKind.ROOT),
        PathStep(name="SICK CO", kind=NodeKind.COMPANY, relation="Filiale"),
    )
    edges = [
        GraphEdge(source="1", target="2", label="Filiale", cost=LinkCost.FREE, path=path),
        GraphEdge(source="P1", target="2", label="Gérant", cost=LinkCost.COSTLY),
        GraphEdge(source="P1", target="2", label="Président", cost=LinkCost.COSTLY),
        GraphEdge(source="P2", target="3", label="Gérant", cost=LinkCost.COSTLY),
    ]
    return [root, sick, healthy, anne, paul], edges


def test_alerted_companies_carry_their_path():
    nodes, edges = _graph()

    alerts = alerted_companies(nodes, edges)

    assert [a.node.id for a in alerts] == ["2"]
    assert [s.name for s in alerts[0].path] == ["ROOT CO", "SICK CO"]


def test_directors_linked_to_alerted_companies():
    nodes, edges = _graph()

    flagged = directors_with_procedures(nodes, edges)

    assert len(flagged) == 1
    assert flagged[0].director.id == "P1"
    assert [c.id for c in flagged[0].companies] == ["2"]
