"""Tests for the coverage event model and its codecs."""
import orjson
import pytest
from pydantic import ValidationError

from tracker.event_models import CoverageEvent, Payload, new_identifier
from conftest import make_event


def test_columns_match_row_order():
    """Test that row() follows COLUMNS exactly."""
    event = make_event()
    values = dict(zip(CoverageEvent.COLUMNS, event.row()))

    assert values["event"] == "TrackTestCoverageEvent"
    assert values["action_reference"] == "refs/heads/main"
    assert values["service_name"] == "checkout"
    assert values["coverage"] == 81.5
    assert len(event.row()) == len(CoverageEvent.COLUMNS)


def test_from_row_restores_event():
    """Test that from_row() is the inverse of row()."""
    event = make_event()
    assert CoverageEvent.from_row(event.row()) == event


def test_row_requires_payload():
    """Test that payload-less events cannot become rows."""
    event = make_event(payload=None)
    with pytest.raises(ValueError):
        event.row()


def test_wire_format_omits_missing_payload():
    """Test that an absent payload is left out of the JSON."""
    data = orjson.loads(make_event(payload=None).to_json())
    assert "payload" not in data
    assert data["event"] == "TrackTestCoverageEvent"


def test_wire_format_fields():
    """Test the JSON field names."""
    data = orjson.loads(make_event().to_json())
    assert set(data) == {
        "event", "venture_config_id", "venture_reference", "created_at",
        "culture", "action_type", "action_reference", "version", "route", "payload",
    }
    assert data["payload"] == {"service_name": "checkout", "coverage": 81.5}


def test_event_is_immutable():
    """Test that events cannot be modified after construction."""
    event = make_event()
    with pytest.raises(ValidationError):
        event.event = "Other"


def test_event_kind_required():
    """Test that an empty event kind is rejected."""
    with pytest.raises(ValidationError):
        make_event(event="")


@pytest.mark.parametrize("coverage", [-0.1, float("nan"), float("inf")])
def test_payload_rejects_invalid_coverage(coverage):
    """Test that coverage must be a non-negative finite number."""
    with pytest.raises(ValidationError):
        Payload(service_name="svc", coverage=coverage)


def test_payload_allows_over_hundred():
    """Test that values above 100 are not rejected."""
    assert Payload(service_name="svc", coverage=120.0).coverage == 120.0


def test_new_identifier_unique():
    """Test that generated identifiers do not collide."""
    ids = {new_identifier() for _ in range(1000)}
    assert len(ids) == 1000
