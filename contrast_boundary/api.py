import asyncio
from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from contrast_boundary.boundary_manager import BoundaryManager
from contrast_boundary.engine.boundary import calculate_boundaries
from contrast_boundary.engine.colors import contrast_threshold, recommended_color
from contrast_boundary.engine.types import RGB, ColorSpace, SampleParams

router = APIRouter()
MAX_LONG_POLL_S = 10.0


class BoundaryPayload(BaseModel):
    # Same field names as SampleParams; threshold may instead be derived from the WCAG level.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    width: float
    height: float
    hue: float
    background_color: RGB
    foreground_alpha: float = 1.0
    threshold: Optional[float] = None
    color_space: ColorSpace = ColorSpace.HSB
    level: Literal["AA", "AAA"] = "AA"
    category: Literal["auto", "large-text", "normal-text", "graphics"] = "auto"
    element_type: Literal["text", "graphics"] = "graphics"

    def to_params(self) -> SampleParams:
        threshold = self.threshold
        if threshold is None:
            threshold = contrast_threshold(self.level, self.category, self.element_type)
        try:
            return SampleParams(
                width=self.width,
                height=self.height,
                hue=self.hue,
                background_color=self.background_color,
                foreground_alpha=self.foreground_alpha,
                threshold=threshold,
                color_space=self.color_space,
            )
        except ValidationError as exc:
            detail = exc.errors(include_url=False, include_context=False, include_input=False)
            raise HTTPException(status_code=422, detail=detail) from exc


class RecommendPayload(BaseModel):
    saturation: float = Field(ge=0.0, le=1.0)
    value: float = Field(ge=0.0, le=1.0)


def _manager(request: Request) -> BoundaryManager:
    mgr = getattr(request.app.state, "boundary_manager", None)
    if mgr is None:
        raise HTTPException(status_code=503, detail="Boundary manager not initialized")
    return mgr


@router.get("/api/status")
def status(request: Request):
    # "ready" is controlled by the lifespan startup sequence (worker init).
    return {"ready": bool(getattr(request.app.state, "ready", False))}


@router.post("/api/boundary")
async def boundary(payload: BoundaryPayload):
    params = payload.to_params()
    # One-shot computation; the scan is CPU bound so it stays off the event loop.
    result = await asyncio.to_thread(calculate_boundaries, params)
    return result.to_wire()


@router.post("/api/session/params")
def session_params(payload: BoundaryPayload, request: Request):
    mgr = _manager(request)
    params = payload.to_params()
    mgr.update_params(params)
    return {"fingerprint": params.fingerprint(), "calculating": mgr.is_calculating()}


@router.get("/api/session/boundary")
async def session_boundary(
    request: Request,
    after: int = Query(default=-1),
    timeout: float = Query(default=1.0, ge=0.0, le=MAX_LONG_POLL_S),
):
    mgr = _manager(request)
    # Long-poll: returns as soon as a result newer than `after` exists, or the current one on timeout.
    result, seq = await asyncio.to_thread(mgr.wait_for_result, after, timeout)
    return {
        "seq": seq,
        "calculating": mgr.is_calculating(),
        "result": result.to_wire() if result is not None else None,
    }


@router.post("/api/session/recommend")
async def session_recommend(payload: RecommendPayload, request: Request):
    mgr = _manager(request)
    point = await asyncio.to_thread(mgr.recommend, payload.saturation, payload.value)
    if point is None:
        return None
    params = mgr.applied_params()
    body = point.to_wire()
    if params is not None:
        body["color"] = recommended_color(point, params.hue, params.color_space).to_wire()
    return body
