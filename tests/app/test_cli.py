from __future__ import annotations

from pathlib import Path
from uuid import uuid4

import pytest

from reelhouse.domain.import_status import (
    CursorStatusRow,
    ImportLabel,
    ManifestStatusRow,
    StatusReport,
)
from reelhouse.domain.model import (
    AdmissionTier,
    CursorStatus,
    EntityKind,
    ManifestStatus,
    RelationStatus,
    StreamKind,
)
from reelhouse.domain.ports import CATALOG_ITEMS_QUEUE, MANIFEST_QUEUE
from reelhouse.domain.recovery import EnrichmentReport, ResumeReport
from reelhouse.ui import cli


def _capture(
    monkeypatch: pytest.MonkeyPatch, name: str, result: object = None
) -> dict[str, object]:
    captured: dict[str, object] = {}

    def fake(*args: object, **kwargs: object) -> object:
        captured["args"] = args
        captured.update(kwargs)
        return result

    monkeypatch.setattr(cli, name, fake)
    return captured


def test_discover_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch, "discover_catalog")

    cli.main(["discover", "--stream", "popular"])

    assert captured["args"] == ("popular",)
    assert captured["kind"] is StreamKind.PAGES
    assert captured["start"] == 1
    assert captured["end"] is None
    assert captured["max_steps"] is None


def test_discover_year_stream(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch, "discover_catalog")

    cli.main(
        [
            "discover",
            "--stream",
            "by-year",
            "--kind",
            "years",
            "--start",
            "1990",
            "--end",
            "1999",
            "--steps",
            "3",
        ]
    )

    assert captured["kind"] is StreamKind.YEARS
    assert (captured["start"], captured["end"], captured["max_steps"]) == (1990, 1999, 3)


@pytest.mark.parametrize(
    "argv",
    [
        ["discover", "--stream", "popular", "--start", "5", "--end", "2"],
        ["discover", "--stream", "by-year", "--kind", "years"],
        ["discover", "--stream", "popular", "--steps", "0"],
        ["enrich", "--kind", "movie", "--limit", "0"],
        ["worker", "--concurrency", "0"],
        ["worker", "--queue", "nowhere"],
    ],
)
def test_invalid_arguments_exit_with_usage_error(
    monkeypatch: pytest.MonkeyPatch, argv: list[str]
) -> None:
    _capture(monkeypatch, "discover_catalog")
    _capture(monkeypatch, "retry_enrichment")
    _capture(monkeypatch, "run_workers")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)

    assert excinfo.value.code == 2


def test_ceremony_command(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    captured = _capture(monkeypatch, "import_ceremony")
    payload = tmp_path / "1995.json"

    cli.main(
        [
            "ceremony",
            "--organization",
            "oscars",
            "--year",
            "1995",
            "--payload-file",
            str(payload),
            "--queued",
        ]
    )

    assert captured["args"] == ("oscars", 1995)
    assert captured["payload_file"] == payload
    assert captured["queued"] is True


def test_resume_with_manifest_id(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch, "resume_imports", ResumeReport())
    manifest_id = uuid4()

    cli.main(["resume", "--manifest", str(manifest_id), "--steps", "2"])

    assert captured["manifest_id"] == manifest_id
    assert captured["max_steps"] == 2


def test_abandon_rejects_invalid_manifest_id(monkeypatch: pytest.MonkeyPatch) -> None:
    _capture(monkeypatch, "abandon_import")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["abandon", "not-a-uuid"])

    assert excinfo.value.code == 2


def test_enrich_command(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch, "retry_enrichment", EnrichmentReport(attempted=1))

    cli.main(["enrich", "--kind", "person", "--limit", "10"])

    assert captured["args"] == (EntityKind.PERSON,)
    assert captured["limit"] == 10


def test_unexpected_errors_exit_with_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(**_: object) -> None:
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(cli, "import_status", broken)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["status"])

    assert excinfo.value.code == 1


def test_format_status_lists_manifests_and_streams() -> None:
    report = StatusReport(
        manifests=(
            ManifestStatusRow(
                manifest_id=uuid4(),
                batch_key="ceremony:oscars:1995",
                status=ManifestStatus.FAILED,
                label=ImportLabel.PARTIAL,
                relations={RelationStatus.CREATED: 3, RelationStatus.FAILED: 1},
                error="1 relation(s) failed",
            ),
        ),
        cursors=(
            CursorStatusRow(
                stream="popular",
                status=CursorStatus.STALLED,
                last_completed_position=4,
                end_position=None,
            ),
        ),
        entities={EntityKind.MOVIE: 10, EntityKind.PERSON: 4},
        admissions={AdmissionTier.FULL: 12},
    )

    lines = cli.format_status(report)

    assert lines[0] == "Entities: movie=10, person=4"
    assert lines[1] == "Admissions: full=12"
    assert "3/4 relations (75%)" in lines[2]
    assert lines[2].endswith("error: 1 relation(s) failed")
    assert lines[3].startswith("popular  stalled")
    assert "at 4/-" in lines[3]
    assert lines[-1] == "Attention: 1 failed manifest(s), 1 stalled stream(s)"


def test_worker_consumes_every_queue_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch, "run_workers")

    cli.main(["worker"])

    assert captured["args"] == ((CATALOG_ITEMS_QUEUE, MANIFEST_QUEUE),)
    assert captured["concurrency"] is None


def test_worker_with_chosen_queue(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch, "run_workers")

    cli.main(["worker", "--queue", MANIFEST_QUEUE, "--concurrency", "2"])

    assert captured["args"] == ([MANIFEST_QUEUE],)
    assert captured["concurrency"] == 2
