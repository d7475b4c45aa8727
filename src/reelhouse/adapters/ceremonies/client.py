"""Ceremony sources: a JSON document tree over HTTP, or JSON files on disk."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from reelhouse.adapters.http_resilience import default_client_factory
from reelhouse.config.ceremony import CeremonyConfig, get_ceremony_config
from reelhouse.domain.errors import MalformedPayloadError, SourceUnavailableError

from .translator import parse_ceremony_payload

if TYPE_CHECKING:
    from reelhouse.adapters.http_resilience import ClientFactory
    from reelhouse.domain.ceremony import CeremonyRecord
    from reelhouse.domain.ports import CeremonySource

log = getLogger(__name__)


def ceremony_document_path(organization: str, year: int) -> str:
    return f"{organization.strip().lower()}/{year}.json"


@dataclass(slots=True)
class HttpCeremonySource:
    """Fetch ``<base_url>/<organization>/<year>.json`` through the resilient client."""

    config: CeremonyConfig = field(default_factory=get_ceremony_config)
    client_factory: ClientFactory = field(default=default_client_factory)

    async def fetch(self, organization: str, year: int) -> CeremonyRecord:
        if self.config.resilience.base_url is None:
            raise SourceUnavailableError(
                "No ceremony source URL configured (CEREMONY_SOURCE_URL)", source="ceremonies"
            )
        path = ceremony_document_path(organization, year)
        async with self.client_factory(self.config.resilience) as client:
            try:
                response = await client.get(path)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                log.warning("Fetching ceremony %s failed: %s", path, exc)
                raise SourceUnavailableError(
                    f"Ceremony {organization} {year} unavailable: {exc}", source="ceremonies"
                ) from exc
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise MalformedPayloadError(f"Ceremony {path} is not JSON") from exc
        return parse_ceremony_payload(payload, organization=organization, year=year)


@dataclass(frozen=True, slots=True)
class FileCeremonySource:
    """Read ceremony payloads from disk.

    ``path`` is either one JSON file, used for whatever ceremony is asked for, or
    a directory laid out like the HTTP tree (``<organization>/<year>.json``).
    """

    path: Path

    def document_for(self, organization: str, year: int) -> Path:
        if self.path.is_dir():
            return self.path / ceremony_document_path(organization, year)
        return self.path

    async def fetch(self, organization: str, year: int) -> CeremonyRecord:
        document = self.document_for(organization, year)
        try:
            text = document.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise MalformedPayloadError(f"No ceremony payload at {document}") from exc
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedPayloadError(f"Ceremony payload {document} is not JSON") from exc
        return parse_ceremony_payload(payload, organization=organization, year=year)


if TYPE_CHECKING:
    _http_check: CeremonySource = HttpCeremonySource()
    _file_check: CeremonySource = FileCeremonySource(Path("ceremonies"))
