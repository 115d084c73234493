"""
CPU reference renderers.

LutRenderer mirrors a GPU texture-sampling pass over the composite 1D LUT;
ColorCubeRenderer mirrors a discrete 3D lookup filter over the color cube.
"""

from typing import Any

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from tonecurve.domain.constants import (
    DEFAULT_CUBE_DIMENSION,
    DEFAULT_LUT_RESOLUTION,
    MIN_CUBE_DIMENSION,
    MIN_LUT_RESOLUTION,
)
from tonecurve.domain.errors import (
    InvalidDimensionError,
    InvalidResolutionError,
    RenderError,
    ToneCurveError,
)
from tonecurve.domain.interfaces import IRenderer
from tonecurve.domain.types import ImageBuffer
from tonecurve.features.cube.logic import build_color_cube
from tonecurve.features.curves.models import ToneCurveSet
from tonecurve.infrastructure.images import ensure_image
from tonecurve.kernel.system.config import BackendPreference
from tonecurve.kernel.system.logging import get_logger
from tonecurve.services.rendering.lut import ToneCurveLUT

logger = get_logger(__name__)


def _checked_input(image: Any) -> ImageBuffer:
    if not isinstance(image, np.ndarray) or image.ndim != 3 or image.shape[2] not in (3, 4):
        raise RenderError(f"Unsupported image buffer: {getattr(image, 'shape', type(image))}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise RenderError(f"Invalid image extent {image.shape[1]}x{image.shape[0]}")
    return ensure_image(image)


def _checked_output(source: ImageBuffer, output: ImageBuffer) -> ImageBuffer:
    if output.shape != source.shape:
        raise RenderError(f"Output extent {output.shape} does not match input {source.shape}")
    return output


class LutRenderer:
    """
    Per-channel lookup through a 1xN RGBA texture with linear filtering and
    clamp-to-edge addressing. Alpha is passed through.
    """

    name = "LUT texture"

    def __init__(self, lut_resolution: int = DEFAULT_LUT_RESOLUTION, half_precision: bool = True) -> None:
        if lut_resolution < MIN_LUT_RESOLUTION:
            raise InvalidResolutionError(lut_resolution)
        self.lut_resolution = lut_resolution
        self.half_precision = half_precision

    def _texels(self, curve_set: ToneCurveSet) -> np.ndarray:
        lut = ToneCurveLUT(curve_set, self.lut_resolution)
        if self.half_precision:
            return lut.as_texture().astype(np.float32)
        return lut.rgba.reshape(self.lut_resolution, 4)

    def render(self, image: ImageBuffer, curve_set: ToneCurveSet) -> ImageBuffer:
        src = _checked_input(image)
        texels = self._texels(curve_set)

        # Linear filtering interpolates between texel centres
        centres = (np.arange(self.lut_resolution, dtype=np.float64) + 0.5) / self.lut_resolution

        out = src.copy()
        for ch in range(3):
            values = np.clip(src[..., ch], 0.0, 1.0)
            out[..., ch] = np.interp(values, centres, texels[:, ch])

        return _checked_output(src, out)


class ColorCubeRenderer:
    """
    Trilinear lookup through the D^3 color cube. Alpha is passed through.
    """

    name = "color cube"

    def __init__(self, cube_dimension: int = DEFAULT_CUBE_DIMENSION) -> None:
        if cube_dimension < MIN_CUBE_DIMENSION:
            raise InvalidDimensionError(cube_dimension)
        self.cube_dimension = cube_dimension

    def render(self, image: ImageBuffer, curve_set: ToneCurveSet) -> ImageBuffer:
        src = _checked_input(image)
        cube = build_color_cube(curve_set, self.cube_dimension)

        axis = np.linspace(0.0, 1.0, self.cube_dimension)
        lookup = RegularGridInterpolator((axis, axis, axis), cube[..., :3], method="linear")

        # Cube is indexed [blue][green][red]
        coords = np.clip(src[..., 2::-1], 0.0, 1.0).reshape(-1, 3)
        rgb = lookup(coords).reshape(src.shape[0], src.shape[1], 3)

        out = src.copy()
        out[..., :3] = rgb
        return _checked_output(src, out)


def create_renderer(
    preference: BackendPreference = BackendPreference.LUT_PREFERRED,
    lut_resolution: int = DEFAULT_LUT_RESOLUTION,
    cube_dimension: int = DEFAULT_CUBE_DIMENSION,
) -> IRenderer:
    """
    Picks the LUT backend when preferred and constructible, otherwise the cube backend.
    """
    if preference == BackendPreference.LUT_PREFERRED:
        try:
            renderer = LutRenderer(lut_resolution=lut_resolution)
            logger.info(f"Renderer: {renderer.name} ({lut_resolution} texels)")
            return renderer
        except ToneCurveError as e:
            logger.warning(f"LUT backend unavailable, falling back to color cube: {e}")

    renderer = ColorCubeRenderer(cube_dimension=cube_dimension)
    logger.info(f"Renderer: {renderer.name} ({cube_dimension}^3)")
    return renderer
