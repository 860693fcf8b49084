from __future__ import annotations

from typing import Tuple, Union

import numpy as np
from PIL import Image


ImageInput = Union[np.ndarray, Image.Image]


def to_rgba(image: ImageInput) -> np.ndarray:
    """Return an HxWx4 uint8 copy of the image.

    Accepts PIL images and numpy arrays shaped HxW (gray), HxWx3 (RGB) or
    HxWx4 (RGBA). Alpha defaults to opaque.
    """
    if isinstance(image, Image.Image):
        return np.array(image.convert("RGBA"), dtype=np.uint8)
    if not isinstance(image, np.ndarray):
        raise TypeError("expected a numpy array or PIL.Image")
    arr = image
    if arr.ndim == 2:
        arr = np.repeat(arr[:, :, None], 3, axis=2)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"unsupported image shape {image.shape}")
    arr = arr.astype(np.uint8, copy=False)
    if arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
        arr = np.concatenate([arr, alpha], axis=2)
    return np.ascontiguousarray(arr)


def rgba_from_hex(color: int) -> Tuple[int, int, int, int]:
    """0xRRGGBBAA -> (r, g, b, a)."""
    color &= 0xFFFFFFFF
    return (color >> 24) & 0xFF, (color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF


__all__ = ["ImageInput", "to_rgba", "rgba_from_hex"]
