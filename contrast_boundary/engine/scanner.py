from typing import List, Tuple

import numpy as np

from contrast_boundary.engine.colors import contrast_ratio_grid, grid_to_rgb
from contrast_boundary.engine.types import ColumnScan, PointI, SafeInterval, SampleParams, ScanResult

# Every second column is sampled; the fitter interpolates between them.
SAMPLE_STEP = 2
MAX_INTERVALS_PER_COLUMN = 2


def sample_columns(width: int) -> np.ndarray:
    return np.arange(0, width + 1, SAMPLE_STEP, dtype=np.int64)


def build_safe_mask(params: SampleParams) -> Tuple[np.ndarray, np.ndarray]:
    """
    Classify the sampled (x, y) grid against the contrast threshold.

    Rows are pixel rows y = 0..height (top to bottom), columns are the sampled x
    positions returned alongside the mask. Saturation grows with x, and
    lightness/brightness falls with y, so y = height is black for both spaces.
    """
    width, height = params.width, params.height
    xs = sample_columns(width)
    ys = np.arange(0, height + 1, dtype=np.int64)

    saturation = xs.astype(np.float64) / float(width)
    value = 1.0 - ys.astype(np.float64) / float(height)
    sat_grid, value_grid = np.meshgrid(saturation, value)

    foreground = grid_to_rgb(params.color_space, params.hue, sat_grid, value_grid)
    ratio = contrast_ratio_grid(params.background_color, foreground, params.foreground_alpha)
    return ratio >= params.threshold, xs


def column_intervals(column_safe: np.ndarray) -> Tuple[SafeInterval, ...]:
    # Run-length boundaries of the boolean column: +1 where a run starts, -1 one past its end.
    padded = np.concatenate(([0], column_safe.astype(np.int8), [0]))
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1) - 1

    intervals = [SafeInterval(int(s), int(e)) for s, e in zip(starts, ends)]
    if len(intervals) > MAX_INTERVALS_PER_COLUMN:
        # Only the outermost runs shape the boundary curves.
        intervals = [intervals[0], intervals[-1]]
    return tuple(intervals)


def scan_grid(params: SampleParams) -> ScanResult:
    if params.width <= 0 or params.height <= 0:
        return ScanResult(columns=(), any_non_origin_safe=False)

    safe, xs = build_safe_mask(params)

    # The origin (saturation 0, value 0) is pure black in both spaces; it alone
    # passing says nothing about where a usable boundary lies.
    origin_safe = bool(safe[-1, 0])
    any_non_origin_safe = int(np.count_nonzero(safe)) - int(origin_safe) > 0

    columns = tuple(
        ColumnScan(x=int(x), intervals=column_intervals(safe[:, idx]))
        for idx, x in enumerate(xs)
    )
    return ScanResult(columns=columns, any_non_origin_safe=any_non_origin_safe)


def extract_boundary_points(scan: ScanResult, height: int) -> Tuple[List[PointI], List[PointI]]:
    """
    Turn per-column safe intervals into raw (lower, upper) boundary points.

    The lower boundary has the safe region above it (smaller y), the upper
    boundary has it below. Each column contributes at most one point to each
    sequence, so both come out strictly increasing in x.
    """
    lower: List[PointI] = []
    upper: List[PointI] = []

    for column in scan.columns:
        intervals = column.intervals
        x = column.x
        if not intervals:
            continue

        if len(intervals) == 1:
            interval = intervals[0]
            if interval.start_y == 0:
                lower.append((x, interval.end_y))
            elif interval.end_y == height:
                upper.append((x, interval.start_y))
            else:
                upper.append((x, interval.start_y))
                lower.append((x, interval.end_y))
            continue

        # Two runs: the unsafe gap between them is what the curves must outline.
        # Its top edge (end of the upper run) bounds safety from below and its
        # bottom edge (start of the lower run) bounds it from above.
        top, bottom = intervals[0], intervals[-1]
        lower.append((x, top.end_y))
        upper.append((x, bottom.start_y))

    return lower, upper
