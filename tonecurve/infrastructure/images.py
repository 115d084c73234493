from typing import Any, cast

import numpy as np
from PIL import Image

from tonecurve.domain.types import ImageBuffer


def ensure_image(arr: Any) -> ImageBuffer:
    """
    Ensures the input is a float32 numpy array and returns it as an ImageBuffer.
    """
    if not isinstance(arr, np.ndarray):
        raise TypeError(f"Expected numpy.ndarray, got {type(arr)}")

    if arr.dtype != np.float32:
        arr = arr.astype(np.float32)

    return cast(ImageBuffer, arr)


def float_to_uint8(buffer: ImageBuffer) -> np.ndarray:
    return cast(np.ndarray, (np.clip(buffer, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8))


def pil_to_buffer(img: Image.Image) -> ImageBuffer:
    """
    PIL (8/16-bit, any mode) -> float32 RGB or RGBA buffer in [0, 1].
    """
    if img.mode in ("I;16", "I;16B", "I;16L", "I"):
        arr = np.asarray(img, dtype=np.float32) / 65535.0
        return ensure_image(np.stack([arr] * 3, axis=-1))

    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() else "RGB")

    return ensure_image(np.asarray(img, dtype=np.float32) / 255.0)


def buffer_to_pil(buffer: ImageBuffer) -> Image.Image:
    """
    float32 buffer (H, W, 3|4) -> 8-bit PIL image.
    """
    u8 = float_to_uint8(np.ascontiguousarray(buffer))
    return Image.fromarray(u8)
