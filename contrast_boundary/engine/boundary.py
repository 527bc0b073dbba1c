import logging
from typing import Optional

from contrast_boundary.engine.fitting import fit_boundary
from contrast_boundary.engine.scanner import extract_boundary_points, scan_grid
from contrast_boundary.engine.types import (
    BezierSegment,
    BoundaryCalculationResult,
    BoundaryInfo,
    SampleParams,
)

logger = logging.getLogger(__name__)

# Below this foreground alpha the composited color is indistinguishable from the background.
NEAR_TRANSPARENT_ALPHA = 0.01


def bottom_edge_boundary(width: int, height: int) -> BoundaryInfo:
    # Straight lower boundary along y=height: "nothing above the bottom edge is safe".
    left = (0, height)
    right = (width, height)
    return BoundaryInfo(
        points=(left, right),
        simplified_points=(left, right),
        bezier_segments=(BezierSegment(start=left, cp1=left, cp2=right, end=right),),
    )


def resolve_degenerate(
    params: SampleParams,
    lower: Optional[BoundaryInfo],
    upper: Optional[BoundaryInfo],
    any_non_origin_safe: bool,
) -> BoundaryCalculationResult:
    """
    Replace degenerate scan outcomes with a forced bottom-edge boundary.

    - nearly transparent foreground and no boundary found;
    - nothing but the zero-chroma/zero-value origin passes (or nothing at all).

    Any other outcome is returned as computed; a missing boundary then means
    the transition simply does not happen inside the frame.
    """
    nothing_found = lower is None and upper is None
    transparent = params.foreground_alpha < NEAR_TRANSPARENT_ALPHA

    if (transparent and nothing_found) or not any_non_origin_safe:
        logger.debug(
            "Degenerate boundary (alpha=%s, non_origin_safe=%s) -> bottom edge",
            params.foreground_alpha,
            any_non_origin_safe,
        )
        return BoundaryCalculationResult(
            lower_boundary=bottom_edge_boundary(params.width, params.height),
            upper_boundary=None,
            threshold=params.threshold,
        )

    return BoundaryCalculationResult(
        lower_boundary=lower,
        upper_boundary=upper,
        threshold=params.threshold,
    )


def calculate_boundaries(params: SampleParams) -> BoundaryCalculationResult:
    # Full pipeline: grid scan -> raw boundary points -> fitted curves -> degenerate cases.
    if params.width <= 0 or params.height <= 0:
        return BoundaryCalculationResult(threshold=params.threshold)

    scan = scan_grid(params)
    lower_raw, upper_raw = extract_boundary_points(scan, params.height)

    lower = fit_boundary(lower_raw, params.width, params.height)
    upper = fit_boundary(upper_raw, params.width, params.height)
    return resolve_degenerate(params, lower, upper, scan.any_non_origin_safe)
