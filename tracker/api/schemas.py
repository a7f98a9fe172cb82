from pydantic import BaseModel
from ..event_models import CoverageEvent

class ActionResponse(BaseModel):
    status: str
    event: str
    service_name: str
    correlation_id: str | None = None

    @classmethod
    def accepted(cls, event: CoverageEvent, correlation_id: str | None = None) -> "ActionResponse":
        return cls(
            status="accepted",
            event=event.event,
            service_name=event.payload.service_name,
            correlation_id=correlation_id,
        )
