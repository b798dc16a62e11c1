"""
Pappers API client.
Docs: https://www.pappers.fr/api/documentation
Requires an api_token; each /entreprise lookup consumes one credit.
"""
import logging

import httpx
from pydantic import ValidationError

from .config import HEADERS, PAPPERS_API_URL, PAPPERS_TIMEOUT
from .models import (
    CollectiveProcedure,
    ControlledEntity,
    EntityRecord,
    EntityStatus,
    LegalPerson,
    Location,
    MandateMatch,
    NaturalPerson,
    Publication,
)
from .source import SourceFetchError

logger = logging.getLogger(__name__)


class PappersSource:
    """EntitySource backed by the Pappers v2 REST API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = PAPPERS_API_URL,
        timeout: float = PAPPERS_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=HEADERS,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _get(self, path: str, params: dict) -> dict:
        try:
            async with self._client() as client:
                resp = await client.get(path, params={"api_token": self.api_key, **params})
        except httpx.HTTPError as exc:
            raise SourceFetchError(0, str(exc) or exc.__class__.__name__) from exc

        if resp.status_code != 200:
            raise SourceFetchError(resp.status_code, _error_message(resp))
        try:
            return resp.json()
        except ValueError as exc:
            raise SourceFetchError(resp.status_code, "Response is not valid JSON") from exc

    async def fetch_entity(self, siren: str) -> EntityRecord:
        """Fetch a company with its representatives and directed companies."""
        data = await self._get("/entreprise", {
            "siren": siren,
            "champs_supplementaires": "representants,entreprises_dirigees",
        })
        try:
            return parse_company(data)
        except (AttributeError, TypeError, ValidationError) as exc:
            raise SourceFetchError(200, f"Unexpected company payload for {siren}") from exc

    async def search_mandates(
        self,
        last_name: str,
        first_name: str,
        birth_date: str | None = None,
    ) -> list[MandateMatch]:
        """Companies where a person (name + given name, optional birth date) holds a mandate."""
        params = {"nom_dirigeant": last_name, "prenom_dirigeant": first_name, "par_page": 20}
        if birth_date:
            params["date_de_naissance_dirigeant_min"] = birth_date
            params["date_de_naissance_dirigeant_max"] = birth_date
        data = await self._get("/recherche-dirigeants", params)
        try:
            return parse_mandates(data)
        except (AttributeError, TypeError, ValidationError) as exc:
            raise SourceFetchError(200, f"Unexpected mandate search payload for {last_name} {first_name}") from exc


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.reason_phrase


def _status(data: dict) -> EntityStatus:
    rcs = (data.get("statut_rcs") or "").lower()
    if data.get("entreprise_cessee") or rcs.startswith("radi"):
        return EntityStatus.CLOSED
    if rcs.startswith("inscrit"):
        return EntityStatus.ACTIVE
    return EntityStatus.UNKNOWN


def _representative(rep: dict) -> NaturalPerson | LegalPerson:
    current = rep.get("actuel") is not False
    if rep.get("personne_morale"):
        siren = rep.get("siren")
        return LegalPerson(
            siren=str(siren) if siren else None,
            name=rep.get("denomination") or rep.get("nom_complet"),
            role=rep.get("qualite"),
            current=current,
        )
    return NaturalPerson(
        last_name=rep.get("nom"),
        first_name=rep.get("prenom_usuel") or rep.get("prenom"),
        full_name=rep.get("nom_complet"),
        birth_date=rep.get("date_de_naissance") or rep.get("date_naissance"),
        role=rep.get("qualite"),
        current=current,
    )


def parse_company(data: dict) -> EntityRecord:
    """Map a raw /entreprise payload onto an EntityRecord."""
    siren = str(data.get("siren") or "")
    siege = data.get("siege") or {}

    controlled = []
    for sub in data.get("entreprises_dirigees") or []:
        sub_siren = sub.get("siren")
        controlled.append(ControlledEntity(
            siren=str(sub_siren) if sub_siren else None,
            name=sub.get("denomination") or sub.get("nom_entreprise"),
            role=sub.get("qualite"),
        ))

    return EntityRecord(
        siren=siren,
        name=data.get("denomination") or data.get("nom_entreprise") or siren,
        legal_form=data.get("forme_juridique"),
        status=_status(data),
        location=Location(city=siege.get("ville"), postal_code=siege.get("code_postal")) if siege else None,
        created_on=data.get("date_creation"),
        representatives=[_representative(r) for r in data.get("representants") or []],
        controlled=controlled,
        procedures=[
            CollectiveProcedure(type=p.get("type") or "", start_date=p.get("date_debut"), end_date=p.get("date_fin"))
            for p in data.get("procedures_collectives") or []
        ],
        publications=[
            Publication(
                type=p.get("type"),
                nature=p.get("nature"),
                family=p.get("famille"),
                date=p.get("date"),
                judgment_date=p.get("date_jugement"),
            )
            for p in data.get("publications_bodacc") or []
        ],
    )


def parse_mandates(data: dict) -> list[MandateMatch]:
    """Flatten /recherche-dirigeants results into unique companies, in answer order."""
    matches = []
    seen = set()
    for result in data.get("resultats") or []:
        for company in result.get("entreprises") or []:
            siren = str(company.get("siren") or "")
            if not siren or siren in seen:
                continue
            seen.add(siren)
            name = company.get("denomination") or company.get("nom_entreprise") or siren
            matches.append(MandateMatch(siren=siren, name=name))
    if matches:
        logger.debug("Mandate search returned %d companies", len(matches))
    return matches
