import numpy as np

from tonecurve.domain.constants import DEFAULT_CUBE_DIMENSION, MIN_CUBE_DIMENSION
from tonecurve.domain.errors import InvalidDimensionError
from tonecurve.domain.types import CubeBuffer, RGBA_CHANNELS
from tonecurve.features.curves.logic import sample_array
from tonecurve.features.curves.models import ToneCurveSet
from tonecurve.kernel.system.logging import get_logger

logger = get_logger(__name__)


def _channel_axis(curve_set: ToneCurveSet, channel_curve, axis: np.ndarray) -> np.ndarray:
    return sample_array(channel_curve, sample_array(curve_set.master, axis))


def build_color_cube(curve_set: ToneCurveSet, dimension: int = DEFAULT_CUBE_DIMENSION) -> CubeBuffer:
    """
    Expands a curve set into a (D, D, D, 4) RGBA cube indexed [blue][green][red].

    Red varies fastest, so cube.reshape(-1) is the standard color-cube memory layout.
    Every axis value goes through master, then through its own channel curve; alpha is 1.
    """
    if dimension < MIN_CUBE_DIMENSION:
        raise InvalidDimensionError(dimension)

    axis = np.arange(dimension, dtype=np.float64) / float(dimension - 1)
    red = _channel_axis(curve_set, curve_set.red, axis)
    green = _channel_axis(curve_set, curve_set.green, axis)
    blue = _channel_axis(curve_set, curve_set.blue, axis)

    cube = np.empty((dimension, dimension, dimension, RGBA_CHANNELS), dtype=np.float32)
    cube[..., 0] = red[np.newaxis, np.newaxis, :]
    cube[..., 1] = green[np.newaxis, :, np.newaxis]
    cube[..., 2] = blue[:, np.newaxis, np.newaxis]
    cube[..., 3] = 1.0

    logger.debug("Built %d^3 color cube", dimension)
    return cube
