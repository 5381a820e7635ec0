#!/usr/bin/env python3
"""
Cliff Detector

Detects descending stairs and ledges in a single depth frame. Owns the
configuration, the camera model wrapper and the cached row geometry table.

Per frame:
1. Rebuild the row geometry table when it is missing, when a setter marked
   it stale, when cam_model_update is on, or when the frame size changed
2. Scan the used bottom band in blocks (block_scanner)
3. Project every flagged block centre into 3D through the camera model

Setters only validate and mark the table stale; the trigonometry runs once
on the next detect() no matter how many parameters changed in between.
"""

# ─── Standard Library Imports ────────────────────────────────────────────────────
import logging
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Tuple

# ─── Third-Party Imports ─────────────────────────────────────────────────────────
import numpy as np

# ─── Local Imports ───────────────────────────────────────────────────────────────
from cliff_detector.detection import defaults
from cliff_detector.detection.block_scanner import Block, mark_blocks, scan_blocks
from cliff_detector.detection.camera_geometry import CameraGeometry, optical_to_ground
from cliff_detector.detection.config import (
    CALIBRATION_FIELDS,
    SCAN_FIELDS,
    CalibrationState,
    ScanConfig,
)
from cliff_detector.detection.depth_image import as_depth_image
from cliff_detector.detection.errors import InvalidConfiguration, MalformedFrame
from cliff_detector.detection.row_geometry import build_row_geometry

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

OPTION_FIELDS = frozenset({'publish_depth_enable', 'ground_frame_points', 'cam_model_update'})


@dataclass
class DetectionResult:
    points: np.ndarray = field(default_factory=lambda: np.empty((0, 3)))  # (N,3) m
    pixels: List[Tuple[float, float]] = field(default_factory=list)      # (row, col) per point
    blocks: List[Block] = field(default_factory=list)
    frame_id: str = ''
    stamp: Any = None
    annotated_depth: Optional[np.ndarray] = None

    def __len__(self):
        return len(self.pixels)

    @classmethod
    def empty(cls, frame_id: str = '', stamp=None):
        return cls(frame_id=frame_id, stamp=stamp)


def _header_of(camera_info):
    header = getattr(camera_info, 'header', None)
    return getattr(header, 'frame_id', ''), getattr(header, 'stamp', None)


class CliffDetector:
    """
    Finds points where the floor drops away, based on a depth image.

    Args:
        camera_model: Pinhole camera model (image_geometry.PinholeCameraModel or compatible)
        calibration: Initial CalibrationState, defaults when omitted
        scan: Initial ScanConfig, defaults when omitted
    """

    def __init__(self, camera_model, calibration: CalibrationState = None,
                 scan: ScanConfig = None, **options):
        self.camera = CameraGeometry(camera_model)
        self._calibration = (calibration or CalibrationState()).validate()
        self._scan = (scan or ScanConfig()).validate()
        self.publish_depth_enable = defaults.PUBLISH_DEPTH_ENABLE
        self.ground_frame_points = defaults.GROUND_FRAME_POINTS
        self.cam_model_update = defaults.CAM_MODEL_UPDATE
        self.params_dirty = True
        self._table = None
        self._table_width = None
        if options:
            self.configure(**options)

    # ─── Configuration ───────────────────────────────────────────────────────────

    @property
    def calibration(self) -> CalibrationState:
        return self._calibration

    @property
    def scan_config(self) -> ScanConfig:
        return self._scan

    @property
    def row_geometry(self):
        """Current row geometry table, None until the next detect() rebuilds it."""
        return None if self.params_dirty else self._table

    def configure(self, **changes):
        """
        Apply several parameter changes at once.

        The merged configuration is validated as a whole; on InvalidConfiguration
        nothing is applied and the previous configuration stays in effect.
        """
        unknown = set(changes) - CALIBRATION_FIELDS - SCAN_FIELDS - OPTION_FIELDS
        if unknown:
            raise InvalidConfiguration(f'Unknown parameter(s): {", ".join(sorted(unknown))}')

        calibration = replace(
            self._calibration, **{k: v for k, v in changes.items() if k in CALIBRATION_FIELDS})
        scan = replace(self._scan, **{k: v for k, v in changes.items() if k in SCAN_FIELDS})
        calibration.validate()
        scan.validate()
        options = {k: v for k, v in changes.items() if k in OPTION_FIELDS}
        for name, value in options.items():
            if not isinstance(value, (bool, np.bool_)):
                raise InvalidConfiguration(f'{name} must be a boolean, got {value!r}')

        self._calibration = calibration
        self._scan = scan
        for name, value in options.items():
            setattr(self, name, bool(value))
        if changes:
            self.params_dirty = True
            logger.debug('Configuration changed: %s', changes)

    def set_range_min(self, rmin: float):
        self.configure(range_min=rmin)

    def set_range_max(self, rmax: float):
        self.configure(range_max=rmax)

    def set_sensor_mount_height(self, height: float):
        self.configure(sensor_mount_height=height)

    def get_sensor_mount_height(self) -> float:
        return self._calibration.sensor_mount_height

    def set_sensor_tilt_angle(self, angle: float):
        self.configure(sensor_tilt_angle=angle)

    def get_sensor_tilt_angle(self) -> float:
        return self._calibration.sensor_tilt_angle

    def set_ground_margin(self, margin: float):
        self.configure(ground_margin=margin)

    def set_used_depth_height(self, height: int):
        self.configure(used_depth_height=height)

    def set_block_size(self, size: int):
        self.configure(block_size=size)

    def set_block_points_thresh(self, thresh: int):
        self.configure(block_points_thresh=thresh)

    def set_depth_img_step_row(self, step: int):
        self.configure(depth_img_step_row=step)

    def set_depth_img_step_col(self, step: int):
        self.configure(depth_img_step_col=step)

    def set_publish_depth_enable(self, enable: bool):
        self.configure(publish_depth_enable=enable)

    def get_publish_depth_enable(self) -> bool:
        return self.publish_depth_enable

    def set_ground_frame_points(self, enable: bool):
        self.configure(ground_frame_points=enable)

    def set_cam_model_update(self, update: bool):
        self.configure(cam_model_update=update)

    def set_parameters_configured(self, configured: bool):
        """False forces a camera model and row geometry refresh on the next frame."""
        self.params_dirty = not configured

    # ─── Detection ───────────────────────────────────────────────────────────────

    def _needs_rebuild(self, depth) -> bool:
        return (
            self._table is None
            or self.params_dirty
            or self.cam_model_update
            or depth.height != self._table.image_height
            or depth.width != self._table_width
        )

    def _rebuild(self, camera_info, depth):
        # never fall back to a stale table
        self._table = None
        self._table_width = None
        self.params_dirty = True

        self.camera.update(camera_info)
        width, height = self.camera.image_size
        if depth.shape != (height, width):
            raise MalformedFrame(
                f'Depth image is {depth.width}x{depth.height}, camera info says {width}x{height}')

        self._table = build_row_geometry(
            self.camera,
            self._calibration.sensor_mount_height,
            self._calibration.sensor_tilt_angle,
            height,
            self._scan.used_depth_height,
        )
        self._table_width = width
        self.params_dirty = False
        logger.debug('Row geometry rebuilt for %dx%d image', width, height)

    def _project(self, blocks: List[Block]) -> np.ndarray:
        if not blocks:
            return np.empty((0, 3))
        points = []
        for b in blocks:
            row, col = b.center
            points.append(self.camera.ray_for_pixel(col, row) * b.distance)
        points = np.array(points)
        if self.ground_frame_points:
            points = optical_to_ground(
                points, self._calibration.sensor_mount_height, self._calibration.sensor_tilt_angle)
        return points

    def detect(self, depth, camera_info, encoding: str = None) -> DetectionResult:
        """
        Detect descending stairs and ledges in one depth frame.

        Args:
            depth: 2D depth buffer (uint16 mm or float m) or DepthImage accessor
            camera_info: CameraInfo associated with the depth frame
            encoding: Optional ROS encoding of the buffer

        Returns:
            DetectionResult with one point per flagged block

        Raises:
            InvalidGeometry: camera info unusable or field of view degenerate
            MalformedFrame: depth buffer does not match the calibrated image

        A frame that raises has no detections: callers that must report every
        frame catch CliffDetectorError and publish DetectionResult.empty().
        """
        frame_id, stamp = _header_of(camera_info)
        depth = as_depth_image(depth, encoding)

        if self._needs_rebuild(depth):
            self._rebuild(camera_info, depth)

        cal = self._calibration
        blocks = scan_blocks(depth, self._table, self._scan,
                             cal.range_min, cal.range_max, cal.ground_margin)

        result = DetectionResult(
            points=self._project(blocks),
            pixels=[b.center for b in blocks],
            blocks=blocks,
            frame_id=frame_id,
            stamp=stamp,
        )
        if self.publish_depth_enable:
            result.annotated_depth = mark_blocks(depth, blocks)
        return result
