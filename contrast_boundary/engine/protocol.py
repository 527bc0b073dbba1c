"""
Messages exchanged between the request coordinator and the boundary worker.

Every message crosses the boundary as a plain dict with camelCase keys:

    worker -> caller   {"id": 0, "status": "ready"}               once, at start
    caller -> worker   {"id": n, "params": {...SampleParams}}       n > 0
    worker -> caller   {"id": n, "result": {...}} | {"id": n, "error": "..."}

Dicts are built fresh for every message, so neither side ever holds a
reference into the other's state.
"""

import logging
from typing import Any, Optional

from pydantic import Field, ValidationError

from contrast_boundary.engine.boundary import calculate_boundaries
from contrast_boundary.engine.types import BoundaryCalculationResult, SampleParams, WireModel

logger = logging.getLogger(__name__)

READY_ID = 0
READY_STATUS = "ready"
MISSING_PARAMS_ERROR = "Received message with undefined params"


class ReadySignal(WireModel):
    id: int = READY_ID
    status: str = READY_STATUS


class ComputeRequest(WireModel):
    id: int = Field(gt=0)
    params: SampleParams


class ComputeResponse(WireModel):
    id: int
    result: Optional[BoundaryCalculationResult] = None
    error: Optional[str] = None

    def to_wire(self) -> dict:
        # Exactly one of result/error is put on the wire.
        if self.error is not None:
            return {"id": self.id, "error": self.error}
        payload = self.result.to_wire() if self.result is not None else None
        return {"id": self.id, "result": payload}


def ready_message() -> dict:
    return ReadySignal().to_wire()


def request_message(request_id: int, params: SampleParams) -> dict:
    return ComputeRequest(id=request_id, params=params).to_wire()


def is_ready_message(message: Any) -> bool:
    return (
        isinstance(message, dict)
        and message.get("id") == READY_ID
        and message.get("status") == READY_STATUS
    )


def parse_response(message: Any) -> ComputeResponse:
    return ComputeResponse.model_validate(message)


def handle_request(message: Any) -> dict:
    """
    Worker-side handler: one request dict in, one response dict out.

    Never raises; malformed input and computation failures come back as an
    ``error`` response carrying the request id (or -1 if even that is missing).
    """
    raw_id = message.get("id") if isinstance(message, dict) else None
    request_id = raw_id if isinstance(raw_id, int) and not isinstance(raw_id, bool) else -1

    if not isinstance(message, dict) or message.get("params") is None:
        return ComputeResponse(id=request_id, error=MISSING_PARAMS_ERROR).to_wire()

    try:
        request = ComputeRequest.model_validate(message)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        error = f"Invalid request {request_id}: {fields}"
        logger.warning(error)
        return ComputeResponse(id=request_id, error=error).to_wire()

    try:
        result = calculate_boundaries(request.params)
    except Exception as exc:
        logger.exception("Boundary calculation failed for request %s", request_id)
        return ComputeResponse(id=request_id, error=str(exc) or exc.__class__.__name__).to_wire()

    return ComputeResponse(id=request_id, result=result).to_wire()
