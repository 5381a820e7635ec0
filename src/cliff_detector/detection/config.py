#!/usr/bin/env python3
"""
Detector Configuration

Two groups of parameters:
- CalibrationState: sensor range band, mount pose and floor margin
- ScanConfig: which rows are scanned and how blocks are sampled

Both are validated as a whole so a batch of changes is accepted or rejected
together.
"""

# ─── Standard Library Imports ────────────────────────────────────────────────────
import math
import numbers
from dataclasses import dataclass, fields

# ─── Local Imports ───────────────────────────────────────────────────────────────
from cliff_detector.detection import defaults
from cliff_detector.detection.errors import InvalidConfiguration


@dataclass(frozen=True)
class CalibrationState:
    range_min: float = defaults.RANGE_MIN                      # m
    range_max: float = defaults.RANGE_MAX                      # m
    sensor_mount_height: float = defaults.SENSOR_MOUNT_HEIGHT  # m
    sensor_tilt_angle: float = defaults.SENSOR_TILT_ANGLE      # deg
    ground_margin: float = defaults.GROUND_MARGIN              # m

    def validate(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
                raise InvalidConfiguration(f'{f.name} must be a finite number, got {value!r}')
        if self.range_min < 0.0:
            raise InvalidConfiguration(f'range_min must not be negative, got {self.range_min}')
        if self.range_min >= self.range_max:
            raise InvalidConfiguration(
                f'range_min ({self.range_min}) must be below range_max ({self.range_max})')
        if self.sensor_mount_height <= 0.0:
            raise InvalidConfiguration(
                f'sensor_mount_height must be positive, got {self.sensor_mount_height}')
        if not -90.0 < self.sensor_tilt_angle < 90.0:
            raise InvalidConfiguration(
                f'sensor_tilt_angle must be within (-90, 90) degrees, got {self.sensor_tilt_angle}')
        if self.ground_margin < 0.0:
            raise InvalidConfiguration(f'ground_margin must not be negative, got {self.ground_margin}')
        return self


@dataclass(frozen=True)
class ScanConfig:
    used_depth_height: int = defaults.USED_DEPTH_HEIGHT      # px from image bottom
    block_size: int = defaults.BLOCK_SIZE                    # px
    block_points_thresh: int = defaults.BLOCK_POINTS_THRESH  # samples
    depth_img_step_row: int = defaults.DEPTH_IMG_STEP_ROW    # px
    depth_img_step_col: int = defaults.DEPTH_IMG_STEP_COL    # px

    def validate(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise InvalidConfiguration(f'{f.name} must be an integer, got {value!r}')
            if value < 1:
                raise InvalidConfiguration(f'{f.name} must be at least 1, got {value}')
        return self


CALIBRATION_FIELDS = frozenset(f.name for f in fields(CalibrationState))
SCAN_FIELDS = frozenset(f.name for f in fields(ScanConfig))
