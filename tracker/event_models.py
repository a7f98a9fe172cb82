from pydantic import BaseModel, ConfigDict, Field
from typing import Any, ClassVar, Sequence
import uuid
import orjson

TRACK_TEST_COVERAGE_EVENT = "TrackTestCoverageEvent"


def new_identifier() -> str:
    """Fresh 128-bit random correlation token."""
    return str(uuid.uuid4())


class Payload(BaseModel):
    model_config = ConfigDict(frozen=True)

    service_name: str = Field(..., min_length=1, description="Service that produced the coverage")
    coverage: float = Field(..., ge=0, allow_inf_nan=False, description="Coverage percentage")


class CoverageEvent(BaseModel):
    """A single test run's outcome and its coverage percentage.

    COLUMNS is the explicit field order shared by the action table and
    the HTML view; row() and from_row() convert against it.
    """
    model_config = ConfigDict(frozen=True)

    COLUMNS: ClassVar[tuple[str, ...]] = (
        "event",
        "venture_config_id",
        "venture_reference",
        "created_at",
        "culture",
        "action_type",
        "action_reference",
        "version",
        "route",
        "service_name",
        "coverage",
    )

    event: str = Field(..., min_length=1, description="Event kind discriminator")
    venture_config_id: str = ""
    venture_reference: str = ""
    created_at: str = ""
    culture: str = ""
    action_type: str = ""
    action_reference: str = ""
    version: str = ""
    route: str = ""
    payload: Payload | None = None

    def row(self) -> tuple[Any, ...]:
        """Values in COLUMNS order. Requires a payload."""
        if self.payload is None:
            raise ValueError("event has no payload")
        return (
            self.event,
            self.venture_config_id,
            self.venture_reference,
            self.created_at,
            self.culture,
            self.action_type,
            self.action_reference,
            self.version,
            self.route,
            self.payload.service_name,
            self.payload.coverage,
        )

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "CoverageEvent":
        values = dict(zip(cls.COLUMNS, row))
        payload = Payload(
            service_name=values.pop("service_name"),
            coverage=values.pop("coverage"),
        )
        return cls(**values, payload=payload)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict; payload is left out when absent."""
        return self.model_dump(exclude_none=True)

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_wire())
