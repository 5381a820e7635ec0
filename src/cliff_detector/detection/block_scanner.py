#!/usr/bin/env python3
"""
Block Scanner

Splits the used bottom band of a depth image into square blocks, samples each
block on a (step_row, step_col) grid and flags the blocks where enough samples
see the floor farther away than a flat floor would be.

Per sample:
1. drop it if invalid or outside [range_min, range_max] (both inclusive)
2. ray distance = depth / tilt_compensation[row]
3. cliff-consistent if ray distance > expected_ground_distance[row] + margin
   and the row's ray meets the floor at all

Blocks are anchored at the image bottom, so a partial block (fewer rows or
columns than block_size) can only appear at the top of the used band or at
the right image edge. Partial blocks use the same threshold.

Output order: block rows bottom to top, then columns left to right.
"""

# ─── Standard Library Imports ────────────────────────────────────────────────────
import logging
from dataclasses import dataclass
from typing import Iterator, List, Tuple

# ─── Third-Party Imports ─────────────────────────────────────────────────────────
import numpy as np

# ─── Local Imports ───────────────────────────────────────────────────────────────
from cliff_detector.detection.defaults import MM_PER_M
from cliff_detector.detection.errors import MalformedFrame

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class Block:
    top: int        # first row (inclusive)
    bottom: int     # last row (exclusive)
    left: int       # first column (inclusive)
    right: int      # last column (exclusive)
    count: int      # cliff-consistent samples
    distance: float # mean ray distance of those samples (m)

    @property
    def center(self) -> Tuple[float, float]:
        """(row, col) of the block centre pixel."""
        return (self.top + self.bottom - 1) / 2.0, (self.left + self.right - 1) / 2.0


# ─── Block Layout ────────────────────────────────────────────────────────────────

def block_rows(image_height: int, first_row: int, block_size: int) -> List[Tuple[int, int]]:
    """(top, bottom) of every block row, bottom of the image first."""
    return [(max(bottom - block_size, first_row), bottom)
            for bottom in range(image_height, first_row, -block_size)]


def block_cols(image_width: int, block_size: int) -> List[Tuple[int, int]]:
    """(left, right) of every block column, left to right."""
    return [(left, min(left + block_size, image_width))
            for left in range(0, image_width, block_size)]


def block_layout(image_height: int, image_width: int, first_row: int,
                 block_size: int) -> Iterator[Tuple[int, int, int, int]]:
    """Yield (top, bottom, left, right) for every block in scan order."""
    for top, bottom in block_rows(image_height, first_row, block_size):
        for left, right in block_cols(image_width, block_size):
            yield top, bottom, left, right


def sample_indices(spans: List[Tuple[int, int]], step: int):
    """
    Sampled pixel indices of every span, each span stepped from its own start.

    Returns:
        indices: (n,) index array, spans concatenated in order
        bounds: per span, its [start, stop) slice into indices
    """
    indices, bounds = [], []
    for start, stop in spans:
        picked = range(start, stop, step)
        bounds.append((len(indices), len(indices) + len(picked)))
        indices.extend(picked)
    return np.array(indices, dtype=np.intp), bounds


# ─── Per-Sample Classification ───────────────────────────────────────────────────

def classify_samples(depth, table, rows, cols, range_min: float, range_max: float,
                     ground_margin: float):
    """
    Classify the depth samples on the grid rows x cols.

    Only the grid is read and converted from the depth buffer.

    Args:
        depth: DepthImage accessor
        table: RowGeometryTable; every entry of rows must be a table row
        rows: Absolute image rows to sample
        cols: Image columns to sample

    Returns:
        cliff: (len(rows), len(cols)) bool, cliff-consistent samples
        ray_distance: same shape float64, compensated distance in meters (NaN where invalid)
    """
    if depth.height != table.image_height:
        raise MalformedFrame(
            f'Depth image has {depth.height} rows, row geometry expects {table.image_height}')

    rows = np.asarray(rows, dtype=np.intp)
    raw = depth.raw(rows, cols)
    in_range = depth.within(raw, range_min, range_max)

    idx = rows - table.first_row
    ray_distance = depth.to_meters(raw) / table.tilt_compensation[idx][:, None]
    limit = table.expected_ground_distance[idx] / MM_PER_M + ground_margin

    cliff = in_range & (ray_distance > limit[:, None]) & table.has_ground[idx][:, None]
    return cliff, ray_distance


# ─── Scanner ─────────────────────────────────────────────────────────────────────

def scan_blocks(depth, table, scan, range_min: float, range_max: float,
                ground_margin: float) -> List[Block]:
    """
    Find the blocks that look like a drop-off.

    Args:
        depth: DepthImage accessor
        table: RowGeometryTable for this image size
        scan: ScanConfig (block size, threshold, sampling steps)
        range_min: Minimum valid depth (m, inclusive)
        range_max: Maximum valid depth (m, inclusive)
        ground_margin: Tolerance above the expected floor distance (m)

    Returns:
        Flagged blocks in scan order
    """
    row_spans = block_rows(table.image_height, table.first_row, scan.block_size)
    col_spans = block_cols(depth.width, scan.block_size)
    rows, row_bounds = sample_indices(row_spans, scan.depth_img_step_row)
    cols, col_bounds = sample_indices(col_spans, scan.depth_img_step_col)

    cliff, ray_distance = classify_samples(
        depth, table, rows, cols, range_min, range_max, ground_margin)

    flagged = []
    for (top, bottom), (r0, r1) in zip(row_spans, row_bounds):
        for (left, right), (c0, c1) in zip(col_spans, col_bounds):
            samples = cliff[r0:r1, c0:c1]
            count = int(np.count_nonzero(samples))
            if count < scan.block_points_thresh:
                continue
            distances = ray_distance[r0:r1, c0:c1][samples]
            flagged.append(Block(top, bottom, left, right, count, float(distances.mean())))

    logger.debug('Scanned %d blocks on a %dx%d sample grid, %d flagged',
                 len(row_spans) * len(col_spans), rows.size, cols.size, len(flagged))
    return flagged


def mark_blocks(depth, blocks: List[Block]) -> np.ndarray:
    """Copy of the depth buffer with every flagged block blanked out."""
    mask = np.zeros(depth.shape, dtype=bool)
    for b in blocks:
        mask[b.top:b.bottom, b.left:b.right] = True
    return depth.with_marked(mask)
