"""Shared fixtures for the boundary engine tests."""

import pytest

from contrast_boundary.engine.types import RGB, ColorSpace, SampleParams

WHITE = RGB(r=255, g=255, b=255)
BLACK = RGB(r=0, g=0, b=0)


def make_params(**overrides) -> SampleParams:
    values = dict(
        width=240,
        height=240,
        hue=0,
        background_color=WHITE,
        foreground_alpha=1.0,
        threshold=4.5,
        color_space=ColorSpace.HSL,
    )
    values.update(overrides)
    return SampleParams(**values)


@pytest.fixture
def red_on_white() -> SampleParams:
    """Hue 0 over white in HSL, AA normal text."""
    return make_params()


@pytest.fixture
def params_factory():
    return make_params
