from cliff_detector.detection.cliff_detector import CliffDetector, DetectionResult
from cliff_detector.detection.config import CalibrationState, ScanConfig
from cliff_detector.detection.errors import (
    CliffDetectorError,
    InvalidConfiguration,
    InvalidGeometry,
    MalformedFrame,
)
