"""
Rectangle helpers shared by the detector and the evaluator.

All rectangles are axis aligned ``(x, y, width, height)`` with the origin at the
top-left corner. The same type is used for pixel-space boxes and for
page-normalized boxes; every function here works in either space as long as
both arguments share it.
"""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class BBox:
    """Bounding box in pixel or normalized page coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def is_valid(self) -> bool:
        """True for finite boxes with a positive area."""
        values = (self.x, self.y, self.width, self.height)
        if not all(math.isfinite(v) for v in values):
            return False
        return self.width > 0 and self.height > 0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def intersection_area(a: BBox, b: BBox) -> float:
    """Area shared by two boxes (0 when they do not overlap)."""
    inter_x = min(a.right, b.right) - max(a.x, b.x)
    inter_y = min(a.bottom, b.bottom) - max(a.y, b.y)
    if inter_x <= 0 or inter_y <= 0:
        return 0.0
    return inter_x * inter_y


def union_bbox(boxes: list[BBox]) -> BBox:
    """Smallest box covering every box in ``boxes``."""
    min_x = min(b.x for b in boxes)
    min_y = min(b.y for b in boxes)
    max_x = max(b.right for b in boxes)
    max_y = max(b.bottom for b in boxes)
    return BBox(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)


def iou(a: BBox, b: BBox) -> float:
    """Intersection over union; 0 for disjoint or degenerate boxes."""
    inter = intersection_area(a, b)
    if inter == 0:
        return 0.0
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    value = inter / union
    return value if math.isfinite(value) else 0.0


def overlap_ratio(box: BBox, other: BBox) -> float:
    """Fraction of ``box`` covered by ``other``."""
    area = box.area
    if area <= 0:
        return 0.0
    return intersection_area(box, other) / area


def contains(outer: BBox, inner: BBox) -> bool:
    """True when ``inner`` lies entirely within ``outer``."""
    return (
        inner.x >= outer.x
        and inner.y >= outer.y
        and inner.right <= outer.right
        and inner.bottom <= outer.bottom
    )


def horizontal_gap(a: BBox, b: BBox) -> float:
    """Empty space between two boxes along x; negative when they overlap."""
    return max(a.x, b.x) - min(a.right, b.right)


def vertical_gap(a: BBox, b: BBox) -> float:
    """Empty space between two boxes along y; negative when they overlap."""
    return max(a.y, b.y) - min(a.bottom, b.bottom)


def is_adjacent(a: BBox, b: BBox, threshold: float) -> bool:
    """
    Check whether two boxes touch or nearly touch.

    Boxes are horizontally adjacent when they share a vertical span and the
    horizontal gap is at most ``threshold``; vertical adjacency is symmetric.
    Overlapping boxes count as adjacent.
    """
    vertical_overlap = -vertical_gap(a, b)
    horizontal_overlap = -horizontal_gap(a, b)

    if vertical_overlap > 0 and horizontal_gap(a, b) <= threshold:
        return True
    return horizontal_overlap > 0 and vertical_gap(a, b) <= threshold


def normalize_bbox(bbox: BBox, page_width: float, page_height: float) -> BBox:
    """Map a pixel-space box into ``[0, 1]`` page-relative coordinates."""
    safe_width = page_width if page_width else 1
    safe_height = page_height if page_height else 1
    return BBox(
        x=bbox.x / safe_width,
        y=bbox.y / safe_height,
        width=bbox.width / safe_width,
        height=bbox.height / safe_height,
    )
