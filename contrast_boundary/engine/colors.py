"""
Color conversion and WCAG contrast helpers used by the boundary scanner.

Conversions go through OpenCV's float32 HLS/HSV paths so a whole sample grid is
converted in one call; the scalar helpers reuse the same path, which keeps a
single code path (and a single rounding behavior) for grid and point queries.
"""

import cv2
import numpy as np

from contrast_boundary.engine.types import RGB, ColorSpace, RecommendedPoint, round_half_up

# WCAG 2.x relative luminance (sRGB linearization knee as used by WCAG 2.0 / tinycolor).
LUMINANCE_KNEE = 0.03928
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)

# (level, category) -> minimum contrast ratio.
CONTRAST_THRESHOLDS = {
    ("AA", "normal-text"): 4.5,
    ("AA", "large-text"): 3.0,
    ("AA", "graphics"): 3.0,
    ("AAA", "normal-text"): 7.0,
    ("AAA", "large-text"): 4.5,
    # WCAG defines no AAA level for non-text contrast; AA applies.
    ("AAA", "graphics"): 3.0,
}
TEXT_CATEGORIES = ("large-text", "normal-text")


def _integer_hue(hue: float) -> int:
    # Integer hue keeps repeated requests for the "same" hue from drifting apart.
    return int(round_half_up(hue)) % 360


def _convert_grid(code: int, hue: float, first: np.ndarray, second: np.ndarray) -> np.ndarray:
    first = np.clip(np.asarray(first, dtype=np.float32), 0.0, 1.0)
    second = np.clip(np.asarray(second, dtype=np.float32), 0.0, 1.0)
    first, second = np.broadcast_arrays(first, second)
    shape = first.shape

    # cvtColor wants an (H, W, 3) image; any input shape is flattened to a single row.
    image = np.empty((1, first.size, 3), dtype=np.float32)
    image[0, :, 0] = float(_integer_hue(hue))
    image[0, :, 1] = first.reshape(-1)
    image[0, :, 2] = second.reshape(-1)

    rgb = cv2.cvtColor(image, code)
    rgb = np.clip(np.floor(rgb.astype(np.float64) * 255.0 + 0.5), 0.0, 255.0)
    return rgb.reshape(shape + (3,))


def hsl_grid_to_rgb(hue: float, saturation: np.ndarray, lightness: np.ndarray) -> np.ndarray:
    # OpenCV's HLS channel order is (H, L, S); float images use H in degrees and L, S in [0, 1].
    return _convert_grid(cv2.COLOR_HLS2RGB, hue, lightness, saturation)


def hsb_grid_to_rgb(hue: float, saturation: np.ndarray, brightness: np.ndarray) -> np.ndarray:
    return _convert_grid(cv2.COLOR_HSV2RGB, hue, saturation, brightness)


def grid_to_rgb(
    color_space: ColorSpace,
    hue: float,
    saturation: np.ndarray,
    value: np.ndarray,
) -> np.ndarray:
    if color_space == ColorSpace.HSL:
        return hsl_grid_to_rgb(hue, saturation, value)
    return hsb_grid_to_rgb(hue, saturation, value)


def _to_rgb(channels: np.ndarray) -> RGB:
    r, g, b = (int(c) for c in channels.reshape(3))
    return RGB(r=r, g=g, b=b)


def hsl_to_rgb(h: float, s: float, l: float) -> RGB:
    return _to_rgb(hsl_grid_to_rgb(h, np.float32(s), np.float32(l)))


def hsb_to_rgb(h: float, s: float, v: float) -> RGB:
    return _to_rgb(hsb_grid_to_rgb(h, np.float32(s), np.float32(v)))


def relative_luminance(rgb: np.ndarray) -> np.ndarray:
    c = np.asarray(rgb, dtype=np.float64) / 255.0
    linear = np.where(c <= LUMINANCE_KNEE, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)
    return linear @ LUMA_WEIGHTS


def composite_over(background: RGB, foreground: np.ndarray, alpha: float) -> np.ndarray:
    # Straight alpha blend of the foreground over an opaque background.
    fg = np.asarray(foreground, dtype=np.float64)
    if alpha >= 1.0:
        return fg
    bg = np.asarray(background.as_tuple(), dtype=np.float64)
    return bg + (fg - bg) * float(alpha)


def contrast_ratio_grid(background: RGB, foreground: np.ndarray, alpha: float = 1.0) -> np.ndarray:
    """Contrast ratio of every foreground color in ``foreground`` (..., 3) against ``background``."""
    fg_lum = relative_luminance(composite_over(background, foreground, alpha))
    bg_lum = float(relative_luminance(np.asarray(background.as_tuple(), dtype=np.float64)))
    lighter = np.maximum(fg_lum, bg_lum)
    darker = np.minimum(fg_lum, bg_lum)
    return (lighter + 0.05) / (darker + 0.05)


def contrast_ratio(background: RGB, foreground: RGB, alpha: float = 1.0) -> float:
    fg = np.asarray(foreground.as_tuple(), dtype=np.float64)
    return float(contrast_ratio_grid(background, fg, alpha))


def effective_element_type(category: str = "auto", element_type: str = "graphics") -> str:
    if category in TEXT_CATEGORIES:
        return "text"
    return element_type or "graphics"


def contrast_threshold(level: str = "AA", category: str = "auto", element_type: str = "graphics") -> float:
    level = "AAA" if level == "AAA" else "AA"
    if category not in ("large-text", "normal-text", "graphics"):
        # "auto" (and anything unknown) resolves through the selected element type.
        category = "normal-text" if element_type == "text" else "graphics"
    return CONTRAST_THRESHOLDS[(level, category)]


def recommended_color(point: RecommendedPoint, hue: float, color_space: ColorSpace) -> RGB:
    # Applying a recommendation keeps the caller's hue; only saturation and
    # lightness/brightness move, so there is no RGB -> HSx hue round-trip.
    if color_space == ColorSpace.HSL:
        return hsl_to_rgb(hue, point.sl_x, point.sl_y)
    return hsb_to_rgb(hue, point.sl_x, point.sl_y)
