import psycopg2
import pytest

from gbp_scan.core.config import Settings
from gbp_scan.core.errors import NotFoundError, PersistenceError, UpstreamConfigurationError, ValidationError
from gbp_scan.core.models import PlaceRecord
from gbp_scan.scan import orchestrator


def _settings():
    return Settings(google_api_key="key", database_url="postgres://", search_radius_km=25.0)


PLACE = PlaceRecord(
    place_id="pid",
    name="Acme Plumbing",
    rating=4.5,
    review_count=20,
    address="1 Main St",
    phone="0113 496 0000",
    photos=[{}] * 3,
    types=["plumber"],
    raw={"place_id": "pid"},
)


@pytest.fixture
def pipeline(monkeypatch):
    state = {"resolved": [], "rows": []}

    def fake_resolve(name, location, api_key, radius_km):
        state["resolved"].append((name, location, api_key, radius_km))
        return PLACE

    def fake_insert(row):
        state["rows"].append(row)
        return "scan-1"

    monkeypatch.setattr(orchestrator, "resolve_place", fake_resolve)
    monkeypatch.setattr(orchestrator.db, "insert_scan", fake_insert)
    return state


def test_start_scan_persists_pending_record_and_returns_result(pipeline):
    result = orchestrator.start_scan("  Acme Plumbing ", "Leeds", settings=_settings())

    assert pipeline["resolved"] == [("Acme Plumbing", "Leeds", "key", 25.0)]
    assert result.scan_id == "scan-1"
    assert result.scores.reviews == 75
    assert result.place_summary["industry"] == "plumbing"
    row = pipeline["rows"][0]
    assert row["scan_status"] == "pending"
    assert row["overall_score"] == result.scores.overall
    assert "issues" in row["scan_results"]["analysis"]


def test_start_scan_dispatches_after_persisting(pipeline):
    dispatched = []

    def dispatch(name, location, result):
        assert pipeline["rows"], "record must exist before dispatch"
        dispatched.append((name, location, result.scan_id))

    orchestrator.start_scan("Acme", "Leeds", settings=_settings(), dispatch=dispatch)

    assert dispatched == [("Acme", "Leeds", "scan-1")]


def test_start_scan_dispatch_failure_does_not_fail_scan(pipeline, caplog):
    def dispatch(name, location, result):
        raise RuntimeError("executor shut down")

    with caplog.at_level("ERROR"):
        result = orchestrator.start_scan("Acme", "Leeds", settings=_settings(), dispatch=dispatch)

    assert result.scan_id == "scan-1"
    assert "Failed to dispatch" in " ".join(caplog.messages)


def test_start_scan_requires_inputs(pipeline):
    with pytest.raises(ValidationError):
        orchestrator.start_scan("", "Leeds", settings=_settings())
    assert pipeline["resolved"] == []


def test_start_scan_lookup_failure_persists_nothing(pipeline, monkeypatch):
    def not_found(*args, **kwargs):
        raise NotFoundError("none")

    monkeypatch.setattr(orchestrator, "resolve_place", not_found)

    with pytest.raises(NotFoundError):
        orchestrator.start_scan("Joe's Plumbing", "Manchester", settings=_settings())
    assert pipeline["rows"] == []


def test_start_scan_classifies_persistence_errors(pipeline, monkeypatch):
    def broken_insert(row):
        raise psycopg2.OperationalError("connection refused")

    monkeypatch.setattr(orchestrator.db, "insert_scan", broken_insert)

    with pytest.raises(PersistenceError):
        orchestrator.start_scan("Acme", "Leeds", settings=_settings())


def test_start_scan_missing_database_is_configuration_error(pipeline, monkeypatch):
    def no_database(row):
        raise RuntimeError("DATABASE_URL is required for database connections")

    monkeypatch.setattr(orchestrator.db, "insert_scan", no_database)

    with pytest.raises(UpstreamConfigurationError):
        orchestrator.start_scan("Acme", "Leeds", settings=_settings())
