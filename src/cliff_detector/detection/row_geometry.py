#!/usr/bin/env python3
"""
Row Geometry Table

Per-row floor model for a depth camera mounted at a known height and pitched
down by a known tilt angle. For every image row used by the scanner it holds:

- delta_angle: angle of the row's central ray below the optical axis (rad)
- expected_ground_distance: distance along that ray to a flat floor (mm)
- tilt_compensation: factor turning an optical-axis depth sample of that row
  into a distance along the row's ray (depth / factor)

Depth images carry distance along the optical axis. For a pinhole camera the
optical-axis depth of a flat floor depends on the row only, so dividing a
sample by cos(delta_angle) makes it directly comparable with the expected
ray length for any column of the row.

The table is a pure function of camera model, mount height, tilt angle and
image height; the detector caches it until one of them changes.
"""

# ─── Standard Library Imports ────────────────────────────────────────────────────
import logging
import math
from dataclasses import dataclass

# ─── Third-Party Imports ─────────────────────────────────────────────────────────
import numpy as np

# ─── Local Imports ───────────────────────────────────────────────────────────────
from cliff_detector.detection.camera_geometry import angle_between_rays
from cliff_detector.detection.defaults import MM_PER_M, NO_GROUND_INTERSECTION
from cliff_detector.detection.errors import InvalidGeometry

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True, eq=False)
class RowGeometryTable:
    first_row: int                       # first image row covered
    image_height: int
    delta_angle: np.ndarray              # (used,) float64, rad
    expected_ground_distance: np.ndarray # (used,) int64, mm
    tilt_compensation: np.ndarray        # (used,) float64

    @property
    def used_rows(self) -> int:
        return self.image_height - self.first_row

    @property
    def has_ground(self) -> np.ndarray:
        """False for rows at or above the horizon."""
        return self.expected_ground_distance != NO_GROUND_INTERSECTION

    def index(self, row: int) -> int:
        """Index into the per-row arrays for an absolute image row."""
        if not self.first_row <= row < self.image_height:
            raise IndexError(f'Row {row} outside table rows [{self.first_row}, {self.image_height})')
        return row - self.first_row

    def same_values(self, other: 'RowGeometryTable') -> bool:
        return (
            self.first_row == other.first_row
            and self.image_height == other.image_height
            and np.array_equal(self.delta_angle, other.delta_angle)
            and np.array_equal(self.expected_ground_distance, other.expected_ground_distance)
            and np.array_equal(self.tilt_compensation, other.tilt_compensation)
        )


# ─── Field Of View ───────────────────────────────────────────────────────────────

def field_of_view(camera, image_height: int):
    """
    Vertical field of view split at the optical axis.

    Measures the angles between the principal ray and the rays through the
    top and bottom rows of the principal column.

    Returns:
        (fov_upper, fov_lower) in radians, both positive
    """
    cx, cy = camera.principal_point
    if not 0.0 < cy < image_height - 1:
        raise InvalidGeometry(f'Principal row cy={cy} outside image rows (0, {image_height - 1})')

    top_ray = camera.ray_for_pixel(cx, 0.0)
    center_ray = camera.ray_for_pixel(cx, cy)
    bottom_ray = camera.ray_for_pixel(cx, image_height - 1.0)

    fov_upper = angle_between_rays(center_ray, top_ray)
    fov_lower = angle_between_rays(center_ray, bottom_ray)
    for name, value in (('upper', fov_upper), ('lower', fov_lower)):
        if not math.isfinite(value) or value <= 0.0:
            raise InvalidGeometry(f'Degenerate {name} field of view: {value}')
    return fov_upper, fov_lower


def delta_angles_for_rows(rows: np.ndarray, cy: float, image_height: int,
                          fov_upper: float, fov_lower: float) -> np.ndarray:
    """Linear row-to-angle mapping, zero at the principal row, positive below it."""
    rows = np.asarray(rows, dtype=np.float64)
    below = fov_lower * (rows - cy) / (image_height - 1 - cy)
    above = -fov_upper * (cy - rows) / cy
    return np.where(rows >= cy, below, above)


def _check_monotonic(camera, rows: np.ndarray):
    # a distorted model may fold rows back on themselves
    slopes = np.array([camera.vertical_slope(float(r)) for r in rows])
    if slopes.size > 1 and not np.all(np.diff(slopes) > 0.0):
        bad = int(np.argmin(np.diff(slopes))) + int(rows[0])
        raise InvalidGeometry(f'Ray angle is not monotonic in image rows (near row {bad})')


# ─── Table Builder ───────────────────────────────────────────────────────────────

def build_row_geometry(camera, mount_height: float, tilt_angle: float,
                       image_height: int, used_depth_height: int) -> RowGeometryTable:
    """
    Build the per-row floor model.

    Args:
        camera: CameraGeometry configured for the current image
        mount_height: Sensor height above the floor (m)
        tilt_angle: Downward pitch of the optical axis (deg)
        image_height: Image height (px)
        used_depth_height: Rows used from the image bottom (px), clamped to the image

    Returns:
        RowGeometryTable covering [image_height - used, image_height)
    """
    if not (math.isfinite(mount_height) and mount_height > 0.0):
        raise InvalidGeometry(f'Sensor mount height must be positive, got {mount_height}')
    if not math.isfinite(tilt_angle):
        raise InvalidGeometry(f'Sensor tilt angle must be finite, got {tilt_angle}')
    image_height = int(image_height)
    if image_height <= 1:
        raise InvalidGeometry(f'Image height too small for a field of view: {image_height}')
    used = min(int(used_depth_height), image_height)
    if used <= 0:
        raise InvalidGeometry(f'No image rows to use (used_depth_height={used_depth_height})')

    fov_upper, fov_lower = field_of_view(camera, image_height)
    _, cy = camera.principal_point

    first_row = image_height - used
    rows = np.arange(first_row, image_height)
    _check_monotonic(camera, rows)

    delta = delta_angles_for_rows(rows, cy, image_height, fov_upper, fov_lower)

    theta = math.radians(tilt_angle) + delta
    meets_floor = theta > 0.0
    sin_theta = np.where(meets_floor, np.sin(theta), 1.0)
    distance_mm = np.rint(mount_height * MM_PER_M / sin_theta)
    distance_mm = np.minimum(distance_mm, NO_GROUND_INTERSECTION)
    expected = np.where(meets_floor, distance_mm, NO_GROUND_INTERSECTION).astype(np.int64)

    compensation = np.cos(delta)

    logger.debug(
        'Row geometry: rows %d..%d, fov up=%.4f down=%.4f rad, %d rows see the floor',
        first_row, image_height - 1, fov_upper, fov_lower, int(np.count_nonzero(meets_floor)))

    return RowGeometryTable(
        first_row=first_row,
        image_height=image_height,
        delta_angle=delta,
        expected_ground_distance=expected,
        tilt_compensation=compensation,
    )
