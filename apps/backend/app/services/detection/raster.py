"""Read-only brightness view over a rendered page buffer."""

from typing import Any

import numpy as np

WHITE = 255.0

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def to_luminance(pixels: Any, width: int, height: int) -> np.ndarray:
    """
    Convert a pixel buffer into a ``height x width`` float32 brightness map.

    Accepts a flat RGBA byte buffer (``bytes``, ``bytearray``, ``memoryview``
    or a 1-D array) or an already shaped ``H x W``, ``H x W x 3`` or
    ``H x W x 4`` array. Missing trailing bytes read as white.
    """
    if width <= 0 or height <= 0:
        return np.zeros((0, 0), dtype=np.float32)

    if isinstance(pixels, np.ndarray) and pixels.ndim in (2, 3):
        arr = pixels
        if arr.shape[0] < height or arr.shape[1] < width:
            rows = min(arr.shape[0], height)
            cols = min(arr.shape[1], width)
            padded = np.full((height, width) + arr.shape[2:], 255, dtype=arr.dtype)
            padded[:rows, :cols] = arr[:rows, :cols]
            arr = padded
        arr = arr[:height, :width]
        if arr.ndim == 2:
            return arr.astype(np.float32)
        if arr.shape[2] < 3:
            return arr[:, :, 0].astype(np.float32)
        return arr[:, :, :3].astype(np.float32) @ LUMA_WEIGHTS

    if isinstance(pixels, np.ndarray):
        flat = pixels.reshape(-1).astype(np.uint8, copy=False)
    else:
        flat = np.frombuffer(bytes(pixels), dtype=np.uint8)

    needed = width * height * 4
    if flat.size < needed:
        flat = np.concatenate([flat, np.full(needed - flat.size, 255, dtype=np.uint8)])
    rgba = flat[:needed].reshape(height, width, 4)
    return rgba[:, :, :3].astype(np.float32) @ LUMA_WEIGHTS


class PixelBuffer:
    """
    Immutable brightness view of a page image.

    Coordinates outside the image read as white so scanning code can probe
    freely around candidates without bounds checks.
    """

    def __init__(self, pixels: Any, width: int, height: int):
        self.width = max(0, int(width))
        self.height = max(0, int(height))
        self.luminance = to_luminance(pixels, self.width, self.height)
        self.luminance.setflags(write=False)

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def brightness(self, x: int, y: int) -> float:
        """Brightness of a single pixel (255 outside the image)."""
        if x < 0 or y < 0 or x >= self.width or y >= self.height:
            return WHITE
        return float(self.luminance[y, x])

    def sample(self, xs: Any, ys: Any) -> np.ndarray:
        """Vectorized brightness lookup; out-of-range coordinates read 255."""
        xs, ys = np.broadcast_arrays(
            np.floor(np.asarray(xs)).astype(np.int64),
            np.floor(np.asarray(ys)).astype(np.int64),
        )
        inside = (xs >= 0) & (xs < self.width) & (ys >= 0) & (ys < self.height)
        out = np.full(xs.shape, WHITE, dtype=np.float32)
        out[inside] = self.luminance[ys[inside], xs[inside]]
        return out

    def window(
        self,
        x0: float,
        y0: float,
        x1: float,
        y1: float,
        step_x: int = 1,
        step_y: int = 1,
    ) -> np.ndarray:
        """Brightness values on a sampling grid over ``[x0, x1) x [y0, y1)``."""
        xs = np.arange(int(x0), int(x1), max(1, step_x))
        ys = np.arange(int(y0), int(y1), max(1, step_y))
        if xs.size == 0 or ys.size == 0:
            return np.zeros((0, 0), dtype=np.float32)
        return self.sample(xs[np.newaxis, :], ys[:, np.newaxis])

    def dark_mask(self, threshold: float) -> np.ndarray:
        """Boolean map of pixels darker than ``threshold``."""
        return self.luminance < threshold

    def row_dark_fraction(
        self, y: int, x0: int, x1: int, threshold: float, step: int = 1
    ) -> float:
        """Fraction of sampled pixels in row ``y`` darker than ``threshold``."""
        values = self.window(x0, y, x1, y + 1, step_x=step)
        if values.size == 0:
            return 0.0
        return float(np.count_nonzero(values < threshold)) / values.size

    def border_dark_ratio(
        self, x: int, y: int, width: int, height: int, threshold: float
    ) -> float:
        """
        Fraction of perimeter pixels darker than ``threshold``.

        The rectangle covers ``width x height`` pixels starting at ``(x, y)``;
        corners are counted once.
        """
        if width < 2 or height < 2:
            return 0.0
        right = x + width - 1
        bottom = y + height - 1
        xs = np.arange(x, x + width)
        inner_ys = np.arange(y + 1, bottom)

        dark = 0
        dark += np.count_nonzero(self.sample(xs, y) < threshold)
        dark += np.count_nonzero(self.sample(xs, bottom) < threshold)
        dark += np.count_nonzero(self.sample(x, inner_ys) < threshold)
        dark += np.count_nonzero(self.sample(right, inner_ys) < threshold)
        total = 2 * width + 2 * inner_ys.size
        return float(dark) / total

    def interior_brightness(
        self, x: int, y: int, width: int, height: int, step: int = 2
    ) -> float:
        """Mean brightness inside a rectangle, excluding a 2px margin."""
        values = self.window(x + 2, y + 2, x + width - 2, y + height - 2, step, step)
        if values.size == 0:
            return 0.0
        return float(values.mean())
