"""Face cropping and thumbnail encoding."""

from __future__ import annotations

import io
import math

import numpy as np
from PIL import Image

from faceage.estimation.types import BoundingBox


def extract_face_image(
    image: np.ndarray,
    bbox: BoundingBox,
    padding: float = 0.3,
) -> np.ndarray | None:
    """Crop a face out of an (H, W[, C]) image array.

    The box is grown by ``padding`` times its size on every side and clipped
    to the image. Returns None when nothing of the box lies inside the image.
    """
    height, width = image.shape[:2]
    x, y, w, h = bbox.to_pixels(width, height)

    pad_x = w * padding
    pad_y = h * padding
    left = max(0, math.floor(x - pad_x))
    top = max(0, math.floor(y - pad_y))
    right = min(width, math.ceil(x + w + pad_x))
    bottom = min(height, math.ceil(y + h + pad_y))

    if right <= left or bottom <= top:
        return None
    return image[top:bottom, left:right].copy()


def to_uint8(image: np.ndarray) -> np.ndarray:
    """Convert an image array to contiguous 8-bit (H, W) or (H, W, C)."""
    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]

    if np.issubdtype(image.dtype, np.floating):
        image = np.clip(np.nan_to_num(image) * 255.0, 0, 255).round()
    elif image.dtype != np.uint8:
        image = np.clip(image, 0, 255)

    return np.ascontiguousarray(image, dtype=np.uint8)


def make_thumbnail(image: np.ndarray | None, size: int = 150, quality: int = 70) -> bytes | None:
    """Encode a face crop as a square JPEG thumbnail.

    Float crops are taken to be in [0, 1]. Other integer types are clipped to
    the 8-bit range.
    """
    if image is None or image.size == 0:
        return None

    pil_image = Image.fromarray(to_uint8(image))
    if pil_image.mode != "RGB":
        pil_image = pil_image.convert("RGB")
    pil_image = pil_image.resize((size, size))

    buffer = io.BytesIO()
    pil_image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()
