"""
End-to-end tests for the boundary pipeline and degenerate-case handling.
"""

from contrast_boundary.engine.boundary import (
    bottom_edge_boundary,
    calculate_boundaries,
    resolve_degenerate,
)
from contrast_boundary.engine.fitting import EDGE_OFFSET, fit_boundary
from contrast_boundary.engine.types import RGB, ColorSpace


class TestRedOnWhite:
    """Hue 0 over white in HSL at 4.5:1: only dark colors pass."""

    def test_upper_boundary_only(self, red_on_white):
        result = calculate_boundaries(red_on_white)
        assert result.lower_boundary is None
        assert result.upper_boundary is not None
        assert result.threshold == 4.5

    def test_upper_spans_full_width(self, red_on_white):
        upper = calculate_boundaries(red_on_white).upper_boundary
        assert upper.simplified_points[0][0] == 0
        assert upper.simplified_points[-1][0] == 240
        assert upper.points[0][0] == 0
        assert upper.points[-1][0] == 240

    def test_points_monotonic_in_x(self, red_on_white):
        upper = calculate_boundaries(red_on_white).upper_boundary
        xs = [x for x, _ in upper.simplified_points]
        assert xs == sorted(xs)
        assert len(set(xs)) == len(xs)

    def test_curve_stays_in_frame(self, red_on_white):
        upper = calculate_boundaries(red_on_white).upper_boundary
        for seg in upper.bezier_segments:
            for _, y in (seg.start, seg.cp1, seg.cp2, seg.end):
                assert -EDGE_OFFSET <= y <= 240 + EDGE_OFFSET


class TestDeterminism:
    def test_identical_params_identical_output(self, red_on_white):
        first = calculate_boundaries(red_on_white).model_dump_json()
        second = calculate_boundaries(red_on_white).model_dump_json()
        assert first == second

    def test_quantized_equivalents_identical_output(self, params_factory):
        a = calculate_boundaries(params_factory(hue=200, width=120, height=120, color_space=ColorSpace.HSB))
        b = calculate_boundaries(params_factory(hue=200.3, width=120.2, height=119.8, color_space=ColorSpace.HSB))
        assert a.model_dump_json() == b.model_dump_json()


class TestDegenerate:
    def test_transparent_foreground_forces_bottom_edge(self, params_factory):
        result = calculate_boundaries(params_factory(foreground_alpha=0.0))
        assert result.lower_boundary == bottom_edge_boundary(240, 240)
        assert result.upper_boundary is None
        assert result.lower_boundary.points == ((0, 240), (240, 240))

    def test_unreachable_threshold_forces_bottom_edge(self, params_factory):
        # Nothing can exceed 21:1.
        result = calculate_boundaries(params_factory(threshold=22))
        assert result.lower_boundary == bottom_edge_boundary(240, 240)
        assert result.upper_boundary is None

    def test_found_boundary_passes_through(self, params_factory):
        params = params_factory(width=100, height=100)
        lower = fit_boundary([(0, 40), (100, 40)], 100, 100)
        result = resolve_degenerate(params, lower, None, any_non_origin_safe=True)
        assert result.lower_boundary == lower
        assert result.upper_boundary is None

    def test_non_positive_size_gives_empty_result(self, params_factory):
        result = calculate_boundaries(params_factory(width=0))
        assert result.lower_boundary is None
        assert result.upper_boundary is None

    def test_bottom_edge_shape(self):
        info = bottom_edge_boundary(100, 50)
        seg = info.bezier_segments[0]
        assert seg.start == seg.cp1 == (0, 50)
        assert seg.cp2 == seg.end == (100, 50)


class TestDarkBackground:
    def test_black_background_has_lower_boundary(self, params_factory):
        """Light colors (top of the picker) pass, so the safe region sits above the curve."""
        result = calculate_boundaries(params_factory(background_color=RGB(r=0, g=0, b=0)))
        assert result.lower_boundary is not None
        assert result.upper_boundary is None
