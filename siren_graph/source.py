"""
Entity data source contract.

A source answers two questions about the registry: "what is this company?"
(fetch_entity) and "where else does this person hold a mandate?"
(search_mandates). Any non-success is raised as SourceFetchError; the crawl
engine treats every such failure the same way and only keeps the code for
diagnostics.
"""
import re
import unicodedata
from typing import Protocol

from .models import EntityRecord, LegalPerson, MandateMatch, NaturalPerson

SIREN_RE = re.compile(r"^\d{9}$")


class SourceFetchError(Exception):
    """Network/HTTP failure or non-200 answer from the registry."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class MalformedIdentifier(SourceFetchError):
    """Identifier rejected before any network call."""

    def __init__(self, siren: str) -> None:
        super().__init__(0, f"Malformed SIREN {siren!r}: expected 9 digits")


class EntitySource(Protocol):
    async def fetch_entity(self, siren: str) -> EntityRecord: ...

    async def search_mandates(
        self,
        last_name: str,
        first_name: str,
        birth_date: str | None = None,
    ) -> list[MandateMatch]: ...


def clean_siren(siren: str) -> str:
    return (siren or "").replace(" ", "").replace(".", "")


def normalize_siren(siren: str) -> str:
    """Strip formatting ("443 061 841") and check the 9-digit shape."""
    clean = clean_siren(siren)
    if not SIREN_RE.match(clean):
        raise MalformedIdentifier(siren)
    return clean


def _fold(text: str) -> str:
    # "Léa  Dubois" -> "LEA_DUBOIS"
    stripped = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode()
    return re.sub(r"\s+", "_", stripped.strip()).upper()


def person_key(person: NaturalPerson) -> str:
    """Deterministic node id for a natural person: LAST_FIRST_BIRTHDATE."""
    if person.last_name or person.first_name:
        name = f"{person.last_name or ''} {person.first_name or ''}"
    else:
        name = person.full_name or "UNKNOWN"
    return f"{_fold(name)}_{person.birth_date or 'UNK'}"


def representative_key(rep: NaturalPerson | LegalPerson) -> str:
    if isinstance(rep, LegalPerson):
        return rep.siren or f"PM_{_fold(rep.label)}"
    return person_key(rep)
