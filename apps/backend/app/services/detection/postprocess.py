"""
Post-processing chain applied to raw detection candidates.

Order matters: size filter, text-overlap filter, adjacency merge, then the
confidence filter. Each step returns a new list and never mutates elements.
"""

from collections.abc import Iterator

import numpy as np

from app.models import ElementType
from app.services.detection.elements import DetectedElement, DetectionOptions, TextBox
from app.services.detection.geometry import BBox, contains, overlap_ratio, union_bbox
from app.services.detection.passes import underline_field_height

MERGED_CONFIDENCE_FACTOR = 0.9


def passes_size_filter(
    element: DetectedElement,
    options: DetectionOptions,
    page_height: int,
) -> bool:
    """Check type-specific minimum dimensions for one element."""
    bbox = element.bbox
    if not bbox.is_valid():
        return False

    if element.type in (ElementType.TEXT, ElementType.BOX):
        # Underline fields are exactly this tall, so they always pass.
        min_height = min(max(12, page_height * 0.015), underline_field_height(options, page_height))
        return bbox.height >= min_height and bbox.width >= 20

    if element.type == ElementType.CHECKBOX:
        min_side = min(bbox.width, bbox.height)
        return min_side >= options.min_checkbox_size and max(bbox.width, bbox.height) / min_side <= 3

    if element.type == ElementType.RADIO:
        min_side = min(bbox.width, bbox.height)
        return min_side >= options.min_radio_size and max(bbox.width, bbox.height) / min_side <= 3

    if element.type == ElementType.SIGNATURE:
        min_height = max(15, page_height * 0.02)
        return bbox.height >= min_height and bbox.width >= min_height * 2

    if element.type == ElementType.LINE:
        return bbox.width >= 30 and bbox.height >= 1

    return True


def filter_by_size(
    elements: list[DetectedElement],
    options: DetectionOptions,
    page_height: int,
) -> list[DetectedElement]:
    return [e for e in elements if passes_size_filter(e, options, page_height)]


def filter_text_overlaps(
    elements: list[DetectedElement],
    text_boxes: list[TextBox] | None,
) -> list[DetectedElement]:
    """Drop detections that are mostly covered by existing text."""
    if not text_boxes:
        return list(elements)

    kept = []
    for element in elements:
        overlaps_text = False
        for text_box in text_boxes:
            overlap = overlap_ratio(element.bbox, text_box.bbox)
            if overlap > 0.4 and contains(text_box.bbox, element.bbox):
                overlaps_text = True
                break
            if overlap > 0.7:
                overlaps_text = True
                break
        if not overlaps_text:
            kept.append(element)

    return kept


def _find(parent: list[int], index: int) -> int:
    while parent[index] != index:
        parent[index] = parent[parent[index]]
        index = parent[index]
    return index


def adjacent_pairs(boxes: list[BBox], threshold: float) -> Iterator[tuple[int, int]]:
    """
    Yield ``(i, j)`` index pairs of boxes for which ``is_adjacent`` holds.

    Boxes are swept in ``x`` order. Adjacency needs a horizontal gap of at
    most ``threshold``, so each box is only tested, vectorized, against the
    boxes that start before its right edge plus the threshold.
    """
    if len(boxes) < 2:
        return

    coords = np.array([(b.x, b.y, b.right, b.bottom) for b in boxes], dtype=np.float64)
    order = np.argsort(coords[:, 0], kind="stable")
    left, top, right, bottom = coords[order].T
    ends = np.searchsorted(left, right + threshold, side="right")

    for i in range(len(order) - 1):
        end = int(ends[i])
        if end <= i + 1:
            continue

        others = slice(i + 1, end)
        h_gap = np.maximum(left[i], left[others]) - np.minimum(right[i], right[others])
        v_gap = np.maximum(top[i], top[others]) - np.minimum(bottom[i], bottom[others])
        adjacent = ((v_gap < 0) & (h_gap <= threshold)) | ((h_gap < 0) & (v_gap <= threshold))

        for offset in np.flatnonzero(adjacent):
            yield int(order[i]), int(order[i + 1 + offset])


def _merge_once(
    elements: list[DetectedElement], merge_threshold: float
) -> list[DetectedElement]:
    parent = list(range(len(elements)))

    by_type: dict[ElementType, list[int]] = {}
    for index, element in enumerate(elements):
        by_type.setdefault(element.type, []).append(index)

    for indices in by_type.values():
        boxes = [elements[index].bbox for index in indices]
        for i, j in adjacent_pairs(boxes, merge_threshold):
            root_a, root_b = _find(parent, indices[i]), _find(parent, indices[j])
            if root_a != root_b:
                parent[max(root_a, root_b)] = min(root_a, root_b)

    groups: dict[int, list[DetectedElement]] = {}
    for index, element in enumerate(elements):
        groups.setdefault(_find(parent, index), []).append(element)

    merged = []
    for root in sorted(groups):
        group = groups[root]
        if len(group) == 1:
            merged.append(group[0])
            continue
        merged.append(DetectedElement(
            type=group[0].type,
            bbox=union_bbox([e.bbox for e in group]),
            confidence=max(e.confidence for e in group) * MERGED_CONFIDENCE_FACTOR,
        ))

    return merged


def merge_adjacent(
    elements: list[DetectedElement], merge_threshold: float
) -> list[DetectedElement]:
    """
    Union same-type elements that touch or nearly touch.

    Groups are connected components of the adjacency relation; each group
    becomes its bounding box with ``max(confidence) * 0.9``. A merged box can
    become adjacent to another element, so merging repeats until the element
    count stops changing.
    """
    current = list(elements)
    while True:
        merged = _merge_once(current, merge_threshold)
        if len(merged) == len(current):
            return merged
        current = merged


def filter_by_confidence(
    elements: list[DetectedElement], threshold: float
) -> list[DetectedElement]:
    return [e for e in elements if e.confidence >= threshold]


def postprocess(
    candidates: list[DetectedElement],
    options: DetectionOptions,
    page_height: int,
    text_boxes: list[TextBox] | None = None,
) -> list[DetectedElement]:
    """Run the full post-processing chain over raw candidates."""
    elements = filter_by_size(candidates, options, page_height)
    elements = filter_text_overlaps(elements, text_boxes)
    elements = merge_adjacent(elements, options.merge_threshold)
    return filter_by_confidence(elements, options.confidence_threshold)
