import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pytest

from cliff_detector.detection.camera_geometry import CameraGeometry
from cliff_detector.detection.cliff_detector import CliffDetector
from cliff_detector.detection.config import CalibrationState, ScanConfig
from cliff_detector.detection.row_geometry import build_row_geometry


# ─── Camera Model Stand-In ───────────────────────────────────────────────────────

class PinholeModel:
    """The subset of image_geometry.PinholeCameraModel the detector uses (no distortion)."""

    def __init__(self):
        self.width = None
        self.height = None
        self.K = None

    def fromCameraInfo(self, msg):
        self.K = np.array(msg.k, dtype=np.float64).reshape(3, 3)
        self.width = msg.width
        self.height = msg.height

    def fx(self):
        return self.K[0, 0]

    def fy(self):
        return self.K[1, 1]

    def cx(self):
        return self.K[0, 2]

    def cy(self):
        return self.K[1, 2]

    def fullResolution(self):
        return self.width, self.height

    def projectPixelTo3dRay(self, uv):
        x = (uv[0] - self.cx()) / self.fx()
        y = (uv[1] - self.cy()) / self.fy()
        norm = math.sqrt(x * x + y * y + 1)
        return x / norm, y / norm, 1.0 / norm

    def project3dToPixel(self, point):
        x, y, z = point
        return self.fx() * x / z + self.cx(), self.fy() * y / z + self.cy()


@dataclass
class Header:
    frame_id: str = 'camera_depth_optical_frame'
    stamp: Any = 42


@dataclass
class CameraInfo:
    width: int
    height: int
    k: list
    header: Header = field(default_factory=Header)


def make_camera_info(width=640, height=480, fx=570.0, fy=570.0, cx=None, cy=None):
    cx = (width - 1) / 2.0 if cx is None else cx
    cy = (height - 1) / 2.0 if cy is None else cy
    return CameraInfo(width=width, height=height, k=[fx, 0.0, cx, 0.0, fy, cy, 0.0, 0.0, 1.0])


# ─── Synthetic Frames ────────────────────────────────────────────────────────────

def floor_frame(table, width, extra=None, dtype=np.float64):
    """
    Depth frame (optical-axis depth) of a flat floor seen through `table`.

    extra: optional (used_rows,) or scalar meters added to the ray distance of
    each used row. Rows above the used band are left invalid (0).
    """
    ray = table.expected_ground_distance / 1000.0
    if extra is not None:
        ray = ray + extra
    depth_rows = ray * table.tilt_compensation
    frame = np.zeros((table.image_height, width), dtype=np.float64)
    frame[table.first_row:, :] = depth_rows[:, None]
    if dtype == np.uint16:
        return np.rint(frame * 1000.0).astype(np.uint16)
    return frame.astype(dtype)


# ─── Fixtures ────────────────────────────────────────────────────────────────────

@pytest.fixture
def camera_info():
    return make_camera_info()


@pytest.fixture
def camera(camera_info):
    geometry = CameraGeometry(PinholeModel())
    geometry.update(camera_info)
    return geometry


@pytest.fixture
def table(camera):
    return build_row_geometry(camera, 0.4, 20.0, 480, 240)


@pytest.fixture
def detector():
    return CliffDetector(PinholeModel(), CalibrationState(), ScanConfig())
