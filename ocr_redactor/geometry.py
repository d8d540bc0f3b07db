"""
Bounding box helpers shared by the region locator and the raster redactor.

All boxes are (x0, y0, x1, y1) tuples in source pixel coordinates with the
origin at the top-left.
"""

from typing import Iterable, Optional

from .models import BBox


def merge_bboxes(bbox1: BBox, bbox2: BBox) -> BBox:
    """
    Merge two bounding boxes by taking their union.

    Args:
        bbox1: (x0, y0, x1, y1) first bounding box
        bbox2: (x0, y0, x1, y1) second bounding box

    Returns:
        Merged bounding box
    """
    return (
        min(bbox1[0], bbox2[0]),
        min(bbox1[1], bbox2[1]),
        max(bbox1[2], bbox2[2]),
        max(bbox1[3], bbox2[3])
    )


def union_bbox(bboxes: Iterable[BBox]) -> Optional[BBox]:
    """Union of any number of boxes, or None when there are none."""
    result = None
    for bbox in bboxes:
        result = bbox if result is None else merge_bboxes(result, bbox)
    return result


def round_bbox(bbox: BBox) -> tuple[int, int, int, int]:
    """Snap a box to whole pixels."""
    return tuple(int(round(v)) for v in bbox)


def split_bbox_horizontally(bbox: BBox, parts: int) -> list[BBox]:
    """
    Split a box into `parts` equal-width columns, left to right.

    Used to approximate per-character boxes when the OCR engine does not
    return usable symbol geometry.
    """
    if parts <= 0:
        return []
    x0, y0, x1, y1 = bbox
    step = (x1 - x0) / parts
    return [
        (x0 + step * i, y0, x0 + step * (i + 1), y1)
        for i in range(parts)
    ]
