"""Public interface for the ceremony payload adapter."""

from __future__ import annotations

from .client import FileCeremonySource, HttpCeremonySource, ceremony_document_path
from .schema import (
    CEREMONY_PAYLOAD_ADAPTER,
    FlatCeremonyPayload,
    KeyedCeremonyPayload,
    NomineePayload,
)
from .translator import parse_ceremony_payload, translate_ceremony

__all__ = [
    "CEREMONY_PAYLOAD_ADAPTER",
    "FileCeremonySource",
    "FlatCeremonyPayload",
    "HttpCeremonySource",
    "KeyedCeremonyPayload",
    "NomineePayload",
    "ceremony_document_path",
    "parse_ceremony_payload",
    "translate_ceremony",
]
