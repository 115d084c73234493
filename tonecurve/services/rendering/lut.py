from dataclasses import dataclass, field

import numpy as np

from tonecurve.domain.constants import DEFAULT_LUT_RESOLUTION
from tonecurve.domain.types import LutBuffer, RGBA_CHANNELS
from tonecurve.features.curves.logic import make_composite_lut
from tonecurve.features.curves.models import ToneCurveSet


@dataclass(frozen=True, eq=False)
class ToneCurveLUT:
    """
    Composite RGBA lookup table of a curve set snapshot, ready for a 1xN texture upload.
    """

    curve_set: ToneCurveSet
    resolution: int = DEFAULT_LUT_RESOLUTION
    rgba: LutBuffer = field(init=False, repr=False)

    def __post_init__(self) -> None:
        rgba = make_composite_lut(self.curve_set, self.resolution)
        rgba.setflags(write=False)
        object.__setattr__(self, "rgba", rgba)

    def as_texture(self) -> np.ndarray:
        """
        (N, 4) half-float texels, as stored by an rgba16Float texture.
        """
        return self.rgba.reshape(self.resolution, RGBA_CHANNELS).astype(np.float16)

    def float16_data(self) -> bytes:
        return self.as_texture().astype("<f2").tobytes()
