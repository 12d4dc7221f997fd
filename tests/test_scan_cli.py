import json

from gbp_scan.core.errors import NotFoundError
from gbp_scan.core.models import RecommendationPayload, ScanResult, ScoreSet
from gbp_scan.jobs import scan_cli

SCORES = ScoreSet(overall=62, reviews=75, engagement=70, photos=20, completeness=67)


def _fake_start_scan(name, location, *, settings):
    return ScanResult(scan_id="scan-1", scores=SCORES, place_summary={"name": name})


def test_run_scan_job_with_recommendations(monkeypatch):
    monkeypatch.setenv("GOOGLE_PLACES_API_KEY", "key")
    monkeypatch.setattr(scan_cli, "start_scan", _fake_start_scan)
    calls = []

    def fake_generate(scan_id, name, location, scores, place_summary, settings):
        calls.append(scan_id)
        return RecommendationPayload(priority="high", recommendations=[], quick_wins=["Add photos"], revenue_impact="More calls")

    monkeypatch.setattr(scan_cli, "generate_recommendations", fake_generate)

    output = scan_cli.run_scan_job(business_name="Acme", business_location="Leeds")

    assert output["scanId"] == "scan-1"
    assert output["recommendations"]["priority"] == "high"
    assert calls == ["scan-1"]


def test_run_scan_job_skips_recommendations(monkeypatch):
    monkeypatch.setenv("GOOGLE_PLACES_API_KEY", "key")
    monkeypatch.setattr(scan_cli, "start_scan", _fake_start_scan)
    generated = []
    monkeypatch.setattr(scan_cli, "generate_recommendations", lambda *a, **k: generated.append(a))

    output = scan_cli.run_scan_job(business_name="Acme", business_location="Leeds", recommend=False)

    assert "recommendations" not in output
    assert generated == []


def test_main_prints_json(monkeypatch, capsys):
    monkeypatch.setenv("GOOGLE_PLACES_API_KEY", "key")
    monkeypatch.setattr(scan_cli, "start_scan", _fake_start_scan)

    exit_code = scan_cli.main(["--name", "Acme", "--location", "Leeds", "--no-recommendations"])

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out)["scores"]["overall"] == 62


def test_main_missing_key_is_configuration_error(monkeypatch, capsys):
    monkeypatch.delenv("GOOGLE_PLACES_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    assert scan_cli.main(["--name", "Acme", "--location", "Leeds"]) == 2


def test_main_not_found(monkeypatch, capsys):
    monkeypatch.setenv("GOOGLE_PLACES_API_KEY", "key")

    def not_found(*args, **kwargs):
        raise NotFoundError("no match")

    monkeypatch.setattr(scan_cli, "start_scan", not_found)

    assert scan_cli.main(["--name", "Joe's Plumbing", "--location", "Manchester"]) == 1
    assert "couldn't find your business" in capsys.readouterr().out
