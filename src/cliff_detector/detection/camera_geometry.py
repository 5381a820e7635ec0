#!/usr/bin/env python3
"""
Camera Geometry Helpers

Thin wrapper around a calibrated pinhole camera model (at runtime an
image_geometry.PinholeCameraModel) plus the ray arithmetic the row geometry
table is built on.

The wrapped model only has to provide:
- fromCameraInfo(info)
- projectPixelTo3dRay((u, v)) / project3dToPixel((x, y, z))
- fx(), fy(), cx(), cy(), fullResolution()

Rays are expressed in the optical frame: x right, y down, z forward.
"""

# ─── Standard Library Imports ────────────────────────────────────────────────────
import math

# ─── Third-Party Imports ─────────────────────────────────────────────────────────
import numpy as np

# ─── Local Imports ───────────────────────────────────────────────────────────────
from cliff_detector.detection.errors import InvalidGeometry


# ─── Ray Arithmetic ──────────────────────────────────────────────────────────────

def length_of_vector(vec) -> float:
    """Length of a 3D vector starting at the origin."""
    v = np.asarray(vec, dtype=np.float64)
    return float(np.sqrt(np.dot(v, v)))


def angle_between_rays(ray1, ray2) -> float:
    """
    Angle between two rays assumed to start at the origin (0,0,0).

    Uses angle = arccos(a*b / (|a||b|)) with the cosine clipped to [-1, 1]
    so floating point overshoot on (anti)parallel rays stays in the domain.

    Args:
        ray1: First ray (3,)
        ray2: Second ray (3,)

    Returns:
        Angle between the two rays in radians
    """
    a = np.asarray(ray1, dtype=np.float64)
    b = np.asarray(ray2, dtype=np.float64)
    norms = length_of_vector(a) * length_of_vector(b)
    if not np.isfinite(norms) or norms == 0.0:
        raise InvalidGeometry(f'Cannot measure angle of degenerate rays {a} and {b}')
    cos_angle = float(np.dot(a, b)) / norms
    return math.acos(min(1.0, max(-1.0, cos_angle)))


def optical_to_ground(points, mount_height: float, tilt_angle: float) -> np.ndarray:
    """
    Express optical-frame points in a floor-aligned frame below the sensor.

    Output axes: x forward (horizontal), y left, z up with the floor at z = 0.
    Points below the floor plane (a drop-off) get negative z.

    Args:
        points: (N,3) points in the optical frame (m)
        mount_height: Sensor height above the floor (m)
        tilt_angle: Downward pitch of the optical axis (deg)
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    a = math.radians(tilt_angle)
    x, y, z = pts[:, 0], pts[:, 1], pts[:, 2]
    forward = z * math.cos(a) - y * math.sin(a)
    down = y * math.cos(a) + z * math.sin(a)
    return np.column_stack([forward, -x, mount_height - down])


# ─── Camera Model Wrapper ────────────────────────────────────────────────────────

class CameraGeometry:
    """
    Validated access to a pinhole camera model.

    Queries made before a successful update() raise InvalidGeometry, as do
    camera infos with a zero-size image or a zero focal length.
    """

    def __init__(self, camera_model):
        self.model = camera_model
        self.ready = False

    def update(self, camera_info):
        """Reconfigure the wrapped model from a CameraInfo-like message."""
        self.ready = False
        try:
            self.model.fromCameraInfo(camera_info)
            width, height = self.model.fullResolution()
            fx, fy = float(self.model.fx()), float(self.model.fy())
            cx, cy = float(self.model.cx()), float(self.model.cy())
        except (AttributeError, IndexError, TypeError, ValueError) as e:
            raise InvalidGeometry(f'Camera info rejected by camera model: {e}') from e

        if int(width) <= 0 or int(height) <= 0:
            raise InvalidGeometry(f'Camera info has zero-size image ({width}x{height})')
        for name, value in (('fx', fx), ('fy', fy), ('cx', cx), ('cy', cy)):
            if not math.isfinite(value):
                raise InvalidGeometry(f'Camera info has non-finite {name}={value}')
        if fx == 0.0 or fy == 0.0:
            raise InvalidGeometry(f'Camera info has zero focal length (fx={fx}, fy={fy})')
        self.ready = True

    def _require_ready(self):
        if not self.ready:
            raise InvalidGeometry('Camera model not set')

    @property
    def image_size(self):
        """(width, height) in pixels."""
        self._require_ready()
        width, height = self.model.fullResolution()
        return int(width), int(height)

    @property
    def principal_point(self):
        """(cx, cy) in pixels."""
        self._require_ready()
        return float(self.model.cx()), float(self.model.cy())

    def ray_for_pixel(self, col: float, row: float) -> np.ndarray:
        """Unit ray through pixel (col, row), optical frame."""
        self._require_ready()
        ray = np.asarray(self.model.projectPixelTo3dRay((float(col), float(row))), dtype=np.float64)
        norm = length_of_vector(ray)
        if ray.shape != (3,) or not np.isfinite(norm) or norm == 0.0:
            raise InvalidGeometry(f'Camera model returned invalid ray {ray} for pixel ({col}, {row})')
        return ray / norm

    def pixel_for_ray(self, ray):
        """(col, row) where the ray hits the image plane."""
        self._require_ready()
        u, v = self.model.project3dToPixel(tuple(float(c) for c in ray))
        return float(u), float(v)

    def vertical_slope(self, row: float) -> float:
        """y/z of the ray through the principal column at the given row."""
        cx, _ = self.principal_point
        ray = self.ray_for_pixel(cx, row)
        if ray[2] <= 0.0:
            raise InvalidGeometry(f'Ray for row {row} does not point forward: {ray}')
        return float(ray[1] / ray[2])
