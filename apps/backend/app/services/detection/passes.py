"""
Per-type raster detection passes.

Each pass is a free function over an immutable ``PixelBuffer`` that returns a
fresh list of candidates, so passes can run in any order (or concurrently)
before the shared post-processing chain.

Strategies:
1. Underlines: thin horizontal strokes with clear space above -> text fields
2. Boxed text fields: dark rectangles with a bright interior
3. Checkboxes: small squares with a dark perimeter
4. Radio buttons: small circles with a dark circumference
5. Signature areas: wide, low bordered rectangles
6. Standalone lines: isolated horizontal strokes (alignment guides)
"""

from dataclasses import dataclass

import numpy as np

from app.models import ElementType
from app.services.detection.elements import DetectedElement, DetectionOptions
from app.services.detection.geometry import BBox
from app.services.detection.raster import PixelBuffer

UNDERLINE_THRESHOLD = 120
LINE_THRESHOLD = 100
SHAPE_THRESHOLD = 140

MIN_LINE_LENGTH = 40
MIN_LINE_DENSITY = 0.7
MAX_RUN_GAP = 2  # Bright pixels bridged inside a dashed or anti-aliased stroke
MAX_STROKE_THICKNESS = 3
ROW_MARGIN = 10
COLUMN_MARGIN = 5

GRID_STEP = 3
CHECKBOX_BORDER_RATIO = 0.65
RADIO_BORDER_RATIO = 0.6
RADIO_SAMPLES = 16
BOX_BORDER_RATIO = 0.6
SIGNATURE_BORDER_RATIO = 0.6


@dataclass(frozen=True)
class Stroke:
    """Horizontal dark stroke: left edge, top row, length and thickness."""
    x: int
    top: int
    width: int
    thickness: int

    @property
    def bottom(self) -> int:
        return self.top + self.thickness - 1


def horizontal_runs(
    dark_row: np.ndarray,
    x0: int,
    x1: int,
    min_length: int = MIN_LINE_LENGTH,
    min_density: float = MIN_LINE_DENSITY,
    max_gap: int = MAX_RUN_GAP,
) -> list[tuple[int, int]]:
    """Return ``(start, length)`` of dense dark runs within ``[x0, x1)``."""
    segment = dark_row[max(0, x0):max(0, x1)]
    if segment.size == 0 or not segment.any():
        return []

    edges = np.diff(np.concatenate(([0], segment.astype(np.int8), [0])))
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1)

    runs = []
    run_start, run_end = int(starts[0]), int(ends[0])
    dark_pixels = run_end - run_start

    def flush():
        length = run_end - run_start
        if length >= min_length and dark_pixels >= length * min_density:
            runs.append((max(0, x0) + run_start, length))

    for start, end in zip(starts[1:], ends[1:]):
        start, end = int(start), int(end)
        if start - run_end <= max_gap:
            run_end = end
            dark_pixels += end - start
        else:
            flush()
            run_start, run_end = start, end
            dark_pixels = end - start
    flush()

    return runs


def _is_stroke_row(dark: np.ndarray, row: int, x: int, width: int) -> bool:
    if row < 0 or row >= dark.shape[0]:
        return False
    return bool(dark[row, x:x + width].mean() >= 0.5)


def find_strokes(
    buffer: PixelBuffer,
    threshold: float,
    row_step: int = 2,
) -> list[Stroke]:
    """
    Find long horizontal strokes on sampled rows.

    Each stroke is measured vertically from the sampled row so that a thick
    line hit on two sampled rows is reported once.
    """
    if buffer.is_empty:
        return []

    dark = buffer.dark_mask(threshold)
    strokes = []
    seen = set()

    for y in range(ROW_MARGIN, buffer.height - ROW_MARGIN, row_step):
        for x, length in horizontal_runs(dark[y], COLUMN_MARGIN, buffer.width - COLUMN_MARGIN):
            top = y
            while y - top < 4 and _is_stroke_row(dark, top - 1, x, length):
                top -= 1
            bottom = y
            while bottom - y < 4 and _is_stroke_row(dark, bottom + 1, x, length):
                bottom += 1

            key = (x, top, length)
            if key in seen:
                continue
            seen.add(key)
            strokes.append(Stroke(x=x, top=top, width=length, thickness=bottom - top + 1))

    return strokes


def is_likely_underline(buffer: PixelBuffer, stroke: Stroke, threshold: float) -> bool:
    """Thin stroke with mostly clear space above it (room to write)."""
    if stroke.thickness > MAX_STROKE_THICKNESS:
        return False

    check_height = min(20, stroke.top - 5)
    if check_height <= 0:
        return False

    above = buffer.window(
        stroke.x,
        stroke.top - check_height,
        stroke.x + stroke.width,
        stroke.top - 2,
        step_x=3,
    )
    if above.size == 0:
        return False

    clear_ratio = np.count_nonzero(above > threshold + 20) / above.size
    return clear_ratio > 0.6


def underline_field_height(options: DetectionOptions, page_height: int) -> float:
    """Height of the input box placed above an underline."""
    return max(options.min_text_field_height, min(25, page_height * 0.025))


def text_field_area_confidence(buffer: PixelBuffer, bbox: BBox) -> float:
    """Score an area above an underline by how empty it is and its shape."""
    score = 0.4

    area = buffer.window(bbox.x, bbox.y, bbox.right, bbox.bottom, step_x=3, step_y=2)
    clear_ratio = np.count_nonzero(area > 180) / area.size if area.size else 0.0
    score += clear_ratio * 0.4

    aspect_ratio = bbox.width / bbox.height if bbox.height > 0 else 0
    if 3 < aspect_ratio < 20:
        score += 0.2

    return min(1.0, float(score))


def detect_underlined_text_fields(
    buffer: PixelBuffer,
    options: DetectionOptions,
    skip_edges: set[tuple[int, int, int]] | None = None,
) -> list[DetectedElement]:
    """
    Place a text input box directly above each accepted underline.

    Strokes whose ``(x, top, width)`` is in ``skip_edges`` are ignored.
    """
    elements = []
    field_height = underline_field_height(options, buffer.height)
    skip_edges = skip_edges or set()

    for stroke in find_strokes(buffer, UNDERLINE_THRESHOLD):
        if stroke.width < MIN_LINE_LENGTH:
            continue
        if (stroke.x, stroke.top, stroke.width) in skip_edges:
            continue
        if not is_likely_underline(buffer, stroke, UNDERLINE_THRESHOLD):
            continue

        # 2px gap between the box and the line
        field_y = stroke.top - field_height - 2
        if field_y < 0:
            continue

        bbox = BBox(x=stroke.x, y=field_y, width=stroke.width, height=field_height)
        elements.append(DetectedElement(
            type=ElementType.TEXT,
            bbox=bbox,
            confidence=text_field_area_confidence(buffer, bbox),
        ))

    return elements


def detect_boxed_text_fields(
    buffer: PixelBuffer, options: DetectionOptions
) -> list[DetectedElement]:
    """Detect text fields drawn as bordered rectangles with an empty interior."""
    elements = []
    min_height = max(3, int(np.ceil(options.min_text_field_height)))
    max_height = int(min(40, options.max_field_height))

    for stroke in find_strokes(buffer, UNDERLINE_THRESHOLD):
        for height in range(min_height, max_height + 1):
            if stroke.top + height > buffer.height:
                break

            border = buffer.border_dark_ratio(
                stroke.x, stroke.top, stroke.width, height, UNDERLINE_THRESHOLD
            )
            if border <= BOX_BORDER_RATIO:
                continue

            if buffer.interior_brightness(stroke.x, stroke.top, stroke.width, height) <= UNDERLINE_THRESHOLD + 40:
                continue

            interior = buffer.window(
                stroke.x + 2,
                stroke.top + 2,
                stroke.x + stroke.width - 2,
                stroke.top + height - 2,
                step_x=3,
                step_y=2,
            )
            clear_ratio = np.count_nonzero(interior > 160) / interior.size if interior.size else 0.0

            elements.append(DetectedElement(
                type=ElementType.TEXT,
                bbox=BBox(x=stroke.x, y=stroke.top, width=stroke.width, height=height),
                confidence=min(1.0, float(border * 0.6 + clear_ratio * 0.4)),
            ))
            break

    return elements


def detect_text_fields(
    buffer: PixelBuffer, options: DetectionOptions
) -> list[DetectedElement]:
    """
    Underlined fields followed by boxed fields.

    The top edge of a boxed field also looks like an underline; it is not
    given a field of its own.
    """
    boxed = detect_boxed_text_fields(buffer, options)
    top_edges = {(int(e.bbox.x), int(e.bbox.y), int(e.bbox.width)) for e in boxed}
    return detect_underlined_text_fields(buffer, options, top_edges) + boxed


def detect_checkboxes(
    buffer: PixelBuffer, options: DetectionOptions
) -> list[DetectedElement]:
    """
    Detect small squares with a dark perimeter.

    Origins are sampled on a fixed grid; at each origin sizes are tried in
    ascending order and the first size whose perimeter is dark enough wins.
    Perimeter sums come from row/column prefix sums so the whole grid is
    tested at once per size.
    """
    min_size = max(2, int(options.min_checkbox_size))
    max_size = int(options.max_checkbox_size)
    if buffer.is_empty or max_size < min_size:
        return []

    dark = buffer.dark_mask(SHAPE_THRESHOLD).astype(np.int32)
    height, width = dark.shape
    ys = np.arange(0, height - max_size, GRID_STEP)
    xs = np.arange(0, width - max_size, GRID_STEP)
    if ys.size == 0 or xs.size == 0:
        return []

    row_cum = np.zeros((height, width + 1), dtype=np.int32)
    row_cum[:, 1:] = np.cumsum(dark, axis=1)
    col_cum = np.zeros((height + 1, width), dtype=np.int32)
    col_cum[1:, :] = np.cumsum(dark, axis=0)

    top_y, left_x = np.meshgrid(ys, xs, indexing="ij")
    chosen = np.zeros(top_y.shape, dtype=np.int32)
    ratios = np.zeros(top_y.shape, dtype=np.float64)

    for size in range(min_size, max_size + 1):
        bottom_y = top_y + size - 1
        right_x = left_x + size - 1

        top = row_cum[top_y, left_x + size] - row_cum[top_y, left_x]
        bottom = row_cum[bottom_y, left_x + size] - row_cum[bottom_y, left_x]
        left = col_cum[bottom_y, left_x] - col_cum[top_y + 1, left_x]
        right = col_cum[bottom_y, right_x] - col_cum[top_y + 1, right_x]

        ratio = (top + bottom + left + right) / (4 * size - 4)
        hit = (chosen == 0) & (ratio > CHECKBOX_BORDER_RATIO)
        chosen[hit] = size
        ratios[hit] = ratio[hit]

    elements = []
    for row, col in zip(*np.nonzero(chosen)):
        size = int(chosen[row, col])
        elements.append(DetectedElement(
            type=ElementType.CHECKBOX,
            bbox=BBox(x=int(xs[col]), y=int(ys[row]), width=size, height=size),
            confidence=float(ratios[row, col]),
        ))

    return elements


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5).astype(np.int64)


def detect_radio_buttons(
    buffer: PixelBuffer, options: DetectionOptions
) -> list[DetectedElement]:
    """
    Detect small circles by sampling points around candidate circumferences.

    Centers are sampled on a fixed grid and radii tried in ascending order.
    Squares also have dark points at the compass directions, so a candidate
    whose bounding-square corners are dark is rejected.
    """
    min_radius = options.min_radio_size / 2
    max_radius = options.max_radio_size / 2
    if buffer.is_empty or max_radius < min_radius or min_radius <= 0:
        return []

    pad = int(np.ceil(max_radius)) + 2
    dark = np.pad(
        buffer.dark_mask(SHAPE_THRESHOLD),
        pad,
        mode="constant",
        constant_values=False,
    )
    ys = np.arange(0, buffer.height, GRID_STEP)
    xs = np.arange(0, buffer.width, GRID_STEP)
    center_y, center_x = np.meshgrid(ys + pad, xs + pad, indexing="ij")

    angles = 2 * np.pi * np.arange(RADIO_SAMPLES) / RADIO_SAMPLES
    chosen = np.zeros(center_y.shape, dtype=np.float64)
    fractions = np.zeros(center_y.shape, dtype=np.float64)

    radius = min_radius
    while radius <= max_radius:
        dx = _round_half_up(radius * np.cos(angles))
        dy = _round_half_up(radius * np.sin(angles))

        dark_count = np.zeros(center_y.shape, dtype=np.int32)
        for ox, oy in zip(dx, dy):
            dark_count += dark[center_y + oy, center_x + ox]
        fraction = dark_count / RADIO_SAMPLES

        corner = int(_round_half_up(np.array(radius)))
        dark_corners = (
            dark[center_y - corner, center_x - corner].astype(np.int32)
            + dark[center_y - corner, center_x + corner]
            + dark[center_y + corner, center_x - corner]
            + dark[center_y + corner, center_x + corner]
        )

        hit = (chosen == 0) & (fraction > RADIO_BORDER_RATIO) & (dark_corners < 3)
        chosen[hit] = radius
        fractions[hit] = fraction[hit]
        radius += 1

    elements = []
    for row, col in zip(*np.nonzero(chosen)):
        r = float(chosen[row, col])
        elements.append(DetectedElement(
            type=ElementType.RADIO,
            bbox=BBox(x=float(xs[col]) - r, y=float(ys[row]) - r, width=r * 2, height=r * 2),
            confidence=float(fractions[row, col]),
        ))

    return elements


def detect_signature_areas(
    buffer: PixelBuffer, options: DetectionOptions
) -> list[DetectedElement]:
    """Detect wide, low bordered rectangles typical of signature boxes."""
    elements = []
    min_width = buffer.width * 0.2
    max_width = buffer.width * 0.8
    min_height = int(np.ceil(max(options.min_text_field_height * 1.5, 20)))
    max_height = int(min(buffer.height * 0.06, options.max_field_height))

    for stroke in find_strokes(buffer, UNDERLINE_THRESHOLD):
        if not (min_width <= stroke.width <= max_width):
            continue

        for height in range(min_height, max_height + 1):
            aspect_ratio = stroke.width / height
            if not (3 <= aspect_ratio <= 10):
                continue

            border = buffer.border_dark_ratio(
                stroke.x, stroke.top, stroke.width, height, UNDERLINE_THRESHOLD
            )
            if border > SIGNATURE_BORDER_RATIO:
                elements.append(DetectedElement(
                    type=ElementType.SIGNATURE,
                    bbox=BBox(x=stroke.x, y=stroke.top, width=stroke.width, height=height),
                    confidence=0.6,
                ))
                break

    return elements


def is_standalone_line(buffer: PixelBuffer, stroke: Stroke, threshold: float) -> bool:
    """No other horizontal stroke within 8px above or below this one."""
    check_distance = 8
    rows = list(range(stroke.top - check_distance, stroke.top))
    rows += list(range(stroke.bottom + 1, stroke.bottom + 1 + check_distance))

    for row in rows:
        fraction = buffer.row_dark_fraction(
            row, stroke.x, stroke.x + stroke.width, threshold, step=3
        )
        if fraction > 0.5:
            return False
    return True


def detect_standalone_lines(
    buffer: PixelBuffer, options: DetectionOptions
) -> list[DetectedElement]:
    """Detect isolated thin horizontal lines (alignment guides)."""
    elements = []

    for stroke in find_strokes(buffer, LINE_THRESHOLD):
        if stroke.thickness > MAX_STROKE_THICKNESS:
            continue
        if not is_standalone_line(buffer, stroke, LINE_THRESHOLD):
            continue

        elements.append(DetectedElement(
            type=ElementType.LINE,
            bbox=BBox(x=stroke.x, y=stroke.top, width=stroke.width, height=stroke.thickness),
            confidence=0.5,
        ))

    return elements


# Pass order only affects the order of the returned candidates.
DETECTION_PASSES = (
    detect_text_fields,
    detect_checkboxes,
    detect_radio_buttons,
    detect_signature_areas,
    detect_standalone_lines,
)
