"""
Offline demo registry.

Selected with PAPPERS_API_KEY=DEMO. Every answer is derived from the digits of
the SIREN, so the same root always yields the same network:
  - last digit 2: active company under a collective procedure
  - last digit 3: deregistered company
  - last digit 4: deregistered company under a collective procedure
The root gets a holding company as legal-person representative and three
subsidiaries; other companies get 0-2 subsidiaries depending on their
fourth-from-last digit.
"""
import asyncio

from .config import DEMO_LATENCY, DEMO_ROOT_SIREN
from .models import (
    CollectiveProcedure,
    ControlledEntity,
    EntityRecord,
    EntityStatus,
    LegalPerson,
    Location,
    MandateMatch,
    NaturalPerson,
)

COMPANY_PREFIXES = ["ALPHA", "BETA", "GAMMA", "DELTA", "OMEGA", "NEXUS", "VERTEX", "AXIOM", "PRISM", "ZENITH"]
COMPANY_SUFFIXES = ["TECH", "INVEST", "CAPITAL", "HOLDINGS", "GROUP", "VENTURES", "PARTNERS", "SOLUTIONS", "DYNAMICS", "SYSTEMS"]
FIRST_NAMES = ["Jean", "Marie", "Pierre", "Sophie", "Antoine", "Camille", "Louis", "Emma", "Hugo", "Léa", "Lucas", "Chloé"]
LAST_NAMES = ["MARTIN", "BERNARD", "DUBOIS", "THOMAS", "ROBERT", "RICHARD", "PETIT", "DURAND", "LEROY", "MOREAU", "SIMON", "LAURENT"]
ROLES = ["Président", "Directeur Général", "Gérant", "Administrateur"]
AUDITOR_ROLE = "Commissaire aux comptes"
LEGAL_FORMS = ["SAS", "SARL", "SA", "SCI"]
CITIES = ["PARIS", "LYON", "MARSEILLE", "TOULOUSE", "NICE", "NANTES", "BORDEAUX", "LILLE"]


def _derived_siren(n: int) -> str:
    return str(n % 1_000_000_000).rjust(9, "4")


def _company_name(n: int, salt: int = 0) -> str:
    return f"{COMPANY_PREFIXES[(n + salt * 17) % 10]} {COMPANY_SUFFIXES[(n + 3 + salt * 16) % 10]}"


class DemoSource:
    """EntitySource generating a synthetic, deterministic network."""

    def __init__(self, latency: float = DEMO_LATENCY, root_siren: str = DEMO_ROOT_SIREN) -> None:
        self.latency = latency
        self.root_siren = root_siren

    async def _wait(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)

    async def fetch_entity(self, siren: str) -> EntityRecord:
        await self._wait()
        n = int(siren)
        is_root = siren == self.root_siren
        last = siren[-1]
        with_procedure = last in ("2", "4")
        radiated = last in ("3", "4")

        prefix = COMPANY_PREFIXES[n % 10]
        if is_root:
            name = "GOOGLE FRANCE"
        elif last == "2":
            name = f"{prefix} (Proc. Coll.)"
        elif last == "3":
            name = f"{prefix} (Radiée)"
        elif last == "4":
            name = f"{prefix} (Radiée + Proc.)"
        else:
            name = _company_name(n)

        representatives: list[NaturalPerson | LegalPerson] = []
        for i in range(1 + n % 2):
            representatives.append(NaturalPerson(
                last_name=LAST_NAMES[(n + i * 11) % len(LAST_NAMES)],
                first_name=FIRST_NAMES[(n + i * 7) % len(FIRST_NAMES)],
                birth_date=f"{1960 + (n + i * 5) % 30}-{1 + (n + i) % 12:02d}-{1 + (n + i * 3) % 28:02d}",
                role=ROLES[i % len(ROLES)],
            ))
        if n % 5 == 0:
            representatives.append(NaturalPerson(last_name="EXPERT", first_name="Audit", role=AUDITOR_ROLE))
        if is_root:
            representatives.append(LegalPerson(
                siren=_derived_siren(n + 100),
                name=f"{COMPANY_PREFIXES[n % 10]} HOLDING",
                role="Holding",
            ))

        if is_root:
            sub_count = 3
        else:
            sub_count = max(0, 2 - int(siren[-4]))
        controlled = []
        for i in range(sub_count):
            sub_n = n + 1000 + i * 111
            sub_name = _company_name(n, salt=i)
            if is_root and i == 1:
                sub_name = f"{COMPANY_PREFIXES[(n + i * 17) % 10]} (Proc. Coll.)"
            elif is_root and i == 2:
                sub_name = f"{COMPANY_PREFIXES[(n + i * 17) % 10]} (Radiée)"
            controlled.append(ControlledEntity(
                siren=_derived_siren(sub_n),
                name=sub_name,
                role=ROLES[i % len(ROLES)],
            ))

        procedures = []
        if with_procedure:
            procedures.append(CollectiveProcedure(
                type="Liquidation judiciaire",
                start_date=f"2023-{1 + n % 12:02d}-15",
            ))

        return EntityRecord(
            siren=siren,
            name=name,
            legal_form=LEGAL_FORMS[n % 4],
            status=EntityStatus.CLOSED if radiated else EntityStatus.ACTIVE,
            location=Location(city=CITIES[n % 8], postal_code=str(75000 + n % 95)),
            created_on=f"{2000 + n % 20}-01-01",
            representatives=representatives,
            controlled=controlled,
            procedures=procedures,
        )

    async def search_mandates(
        self,
        last_name: str,
        first_name: str,
        birth_date: str | None = None,
    ) -> list[MandateMatch]:
        await self._wait()
        seed = sum(ord(c) for c in f"{last_name}{first_name}{birth_date or ''}")
        n = 100_000_000 + (seed * 7919) % 900_000_000
        return [MandateMatch(siren=_derived_siren(n), name=_company_name(n))]
