"""
Raster redaction: paints a cover image over each region of a bitmap.

The cover is stretched independently in x and y to fill each box exactly,
so the aspect ratio is not preserved. Regions are drawn in order and later
regions may overpaint earlier ones.
"""

import logging
from typing import Iterable, Union

import cv2
import numpy as np

from .geometry import round_bbox
from .image_io import make_artifact
from .models import BBox, RedactedImage, RedactionRegion


logger = logging.getLogger(__name__)


def ensure_rgba(image: np.ndarray) -> np.ndarray:
    """
    Return `image` as a 4-channel uint8 array.

    Accepts grayscale (H, W), RGB (H, W, 3) or RGBA (H, W, 4) input.
    """
    if image.ndim == 2:
        return cv2.cvtColor(image.astype(np.uint8, copy=False), cv2.COLOR_GRAY2RGBA)
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image.astype(np.uint8, copy=False), cv2.COLOR_RGB2RGBA)
    if image.ndim == 3 and image.shape[2] == 4:
        return image.astype(np.uint8, copy=False)
    raise ValueError(f"Unsupported bitmap shape {image.shape}")


def composite_over(dst: np.ndarray, src: np.ndarray) -> None:
    """
    Alpha-composite `src` over `dst` in place (both RGBA, same shape).

    Fully opaque source pixels replace the destination exactly.
    """
    alpha = src[..., 3:4].astype(np.float32) / 255.0
    if np.all(alpha == 1.0):
        dst[...] = src
        return

    inv = 1.0 - alpha
    rgb = src[..., :3].astype(np.float32) * alpha + dst[..., :3].astype(np.float32) * inv
    a = alpha[..., 0] * 255.0 + dst[..., 3].astype(np.float32) * inv[..., 0]
    dst[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    dst[..., 3] = np.clip(np.rint(a), 0, 255).astype(np.uint8)


def scale_cover(cover: np.ndarray, width: int, height: int) -> np.ndarray:
    """Stretch the cover to exactly width x height pixels."""
    if cover.shape[1] == width and cover.shape[0] == height:
        return cover
    # Area interpolation avoids moire when shrinking large covers
    shrinking = width < cover.shape[1] and height < cover.shape[0]
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
    return cv2.resize(cover, (width, height), interpolation=interpolation)


def draw_cover(canvas: np.ndarray, cover: np.ndarray, bbox: BBox) -> bool:
    """
    Draw the cover scaled into `bbox` on the canvas.

    Parts of the box outside the canvas are clipped.

    Returns:
        True if any pixel was drawn
    """
    x0, y0, x1, y1 = round_bbox(bbox)
    width = x1 - x0
    height = y1 - y0
    if width <= 0 or height <= 0:
        return False

    canvas_height, canvas_width = canvas.shape[:2]
    cx0 = max(0, x0)
    cy0 = max(0, y0)
    cx1 = min(canvas_width, x1)
    cy1 = min(canvas_height, y1)
    if cx1 <= cx0 or cy1 <= cy0:
        return False

    scaled = scale_cover(cover, width, height)
    patch = scaled[cy0 - y0:cy1 - y0, cx0 - x0:cx1 - x0]
    composite_over(canvas[cy0:cy1, cx0:cx1], patch)
    return True


def redact(
    source_bitmap: np.ndarray,
    regions: Iterable[Union[RedactionRegion, BBox]],
    cover_image: np.ndarray
) -> np.ndarray:
    """
    Paint the cover image over every region of the source bitmap.

    Args:
        source_bitmap: Source image (grayscale, RGB or RGBA array)
        regions: Regions or raw (x0, y0, x1, y1) boxes, in draw order
        cover_image: Cover bitmap (grayscale, RGB or RGBA array)

    Returns:
        New RGBA canvas the same size as the source; the source is not
        modified. Grayscale and RGB sources come back expanded to RGBA with
        opaque alpha, so with no regions the result equals the source pixel
        for pixel only when the source is already RGBA.
    """
    canvas = ensure_rgba(source_bitmap).copy()
    cover = ensure_rgba(cover_image)

    drawn = 0
    for region in regions:
        bbox = region.bbox if isinstance(region, RedactionRegion) else region
        if draw_cover(canvas, cover, bbox):
            drawn += 1

    logger.debug("Drew cover over %d region(s)", drawn)
    return canvas


def redact_image(
    source_bitmap: np.ndarray,
    regions: Iterable[Union[RedactionRegion, BBox]],
    cover_image: np.ndarray,
    source_name: str
) -> RedactedImage:
    """
    Redact a bitmap and encode it as a PNG artifact named after the source.

    Raises:
        EncodeError: If the canvas cannot be encoded
    """
    canvas = redact(source_bitmap, regions, cover_image)
    return make_artifact(canvas, source_name)
