#!/usr/bin/env python3
"""
Depth Image Accessors

The scanner reads depth through one capability, "depth in meters or invalid
at these rows and columns", implemented once per pixel encoding:

- MillimeterDepthImage: uint16 samples in millimeters, 0 = no measurement
- MeterDepthImage: float samples in meters, 0 / NaN / inf = no measurement

Reads take explicit row and column index arrays so only the sampled grid is
gathered and converted. Range checks run on the raw samples in the buffer's
own precision, so a 32FC1 sample equal to range_max is still inside the band.
"""

# ─── Third-Party Imports ─────────────────────────────────────────────────────────
import numpy as np

# ─── Local Imports ───────────────────────────────────────────────────────────────
from cliff_detector.detection.defaults import MM_PER_M
from cliff_detector.detection.errors import MalformedFrame


class DepthImage:
    """Read accessor over a 2D depth buffer."""

    encoding = None
    dtypes = ()

    def __init__(self, data: np.ndarray):
        data = np.asarray(data)
        if data.ndim != 2:
            raise MalformedFrame(f'Depth image must be 2D, got shape {data.shape}')
        if data.dtype not in self.dtypes:
            raise MalformedFrame(f'{type(self).__name__} cannot hold {data.dtype} samples')
        self.data = data

    @property
    def shape(self):
        return self.data.shape

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    def raw(self, rows=None, cols=None) -> np.ndarray:
        """
        Raw samples on the grid rows x cols.

        Args:
            rows: Row indices, all rows when None
            cols: Column indices, all columns when None
        """
        if rows is None and cols is None:
            return self.data
        rows = np.arange(self.height) if rows is None else np.asarray(rows, dtype=np.intp)
        cols = np.arange(self.width) if cols is None else np.asarray(cols, dtype=np.intp)
        return self.data[np.ix_(rows, cols)]

    def meters(self, rows=None, cols=None) -> np.ndarray:
        """float64 depth in meters on the grid rows x cols, NaN where invalid."""
        return self.to_meters(self.raw(rows, cols))

    def to_meters(self, raw: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def within(self, raw: np.ndarray, range_min: float, range_max: float) -> np.ndarray:
        """True for valid raw samples inside [range_min, range_max]."""
        raise NotImplementedError

    def with_marked(self, mask: np.ndarray) -> np.ndarray:
        """Copy of the raw buffer with masked pixels set to the invalid value."""
        out = self.data.copy()
        out[mask] = 0
        return out


class MillimeterDepthImage(DepthImage):
    encoding = '16UC1'
    dtypes = (np.dtype(np.uint16),)

    def to_meters(self, raw):
        out = raw.astype(np.float64) / MM_PER_M
        out[raw == 0] = np.nan
        return out

    def within(self, raw, range_min, range_max):
        # integer mm / 1000 rounds to the same double as the decimal meter value
        meters = raw / MM_PER_M
        return (raw != 0) & (meters >= range_min) & (meters <= range_max)


class MeterDepthImage(DepthImage):
    encoding = '32FC1'
    dtypes = (np.dtype(np.float32), np.dtype(np.float64))

    def to_meters(self, raw):
        out = raw.astype(np.float64)
        out[~np.isfinite(out) | (out <= 0.0)] = np.nan
        return out

    def within(self, raw, range_min, range_max):
        lo = raw.dtype.type(range_min)
        hi = raw.dtype.type(range_max)
        return np.isfinite(raw) & (raw > 0) & (raw >= lo) & (raw <= hi)


# ─── Encoding Dispatch ───────────────────────────────────────────────────────────

ENCODINGS = {
    '16UC1': MillimeterDepthImage,
    'mono16': MillimeterDepthImage,
    '32FC1': MeterDepthImage,
    '64FC1': MeterDepthImage,
}


def as_depth_image(depth, encoding: str = None) -> DepthImage:
    """
    Wrap a depth buffer in the matching accessor.

    Args:
        depth: DepthImage, or 2D numpy array
        encoding: Optional ROS image encoding; the dtype decides when omitted

    Returns:
        DepthImage accessor
    """
    if isinstance(depth, DepthImage):
        return depth
    data = np.asarray(depth)
    if encoding is not None:
        cls = ENCODINGS.get(encoding)
        if cls is None:
            raise MalformedFrame(f'Unsupported depth encoding: {encoding}')
        return cls(data)
    if data.dtype == np.uint16:
        return MillimeterDepthImage(data)
    if data.dtype in (np.float32, np.float64):
        return MeterDepthImage(data)
    raise MalformedFrame(f'Unsupported depth sample type: {data.dtype}')
