#!/usr/bin/env python3
"""
Cliff Detector Node

This node finds descending stairs and ledges in front of a ground robot using
a depth camera tilted towards the floor.

How it works:
1. Receives synchronized depth image + camera info pairs
2. Compares every sampled pixel with the distance a flat floor would have
3. Flags image blocks where the floor is farther away than expected
4. Publishes one point per flagged block on the points topic (PolygonStamped)
5. Optionally republishes the depth image with flagged blocks blanked out

All parameters can be changed at runtime with `ros2 param set`; the row
geometry is recomputed lazily on the next frame.
"""

# ─── ROS2 Imports ────────────────────────────────────────────────────────────────
import rclpy
from rclpy.node import Node
from rcl_interfaces.msg import (
    FloatingPointRange,
    IntegerRange,
    ParameterDescriptor,
    SetParametersResult,
)
from sensor_msgs.msg import CameraInfo, Image
from geometry_msgs.msg import Point32, PolygonStamped
from std_msgs.msg import Header
from cv_bridge import CvBridge, CvBridgeError
from image_geometry import PinholeCameraModel
from message_filters import Subscriber, TimeSynchronizer

# ─── Local Imports ───────────────────────────────────────────────────────────────
from cliff_detector.detection import defaults
from cliff_detector.detection.cliff_detector import CliffDetector
from cliff_detector.detection.errors import CliffDetectorError, InvalidConfiguration

# ─── Parameter Table ─────────────────────────────────────────────────────────────
# ROS parameter name -> (detector field, default, description, range)
DETECTOR_PARAMETERS = {
    'range_min': ('range_min', defaults.RANGE_MIN,
                  'Minimum sensor range (m), below it is the dead zone',
                  (0.0, 10.0)),
    'range_max': ('range_max', defaults.RANGE_MAX,
                  'Maximum sensor range (m)',
                  (0.0, 20.0)),
    'sensor_mount_height': ('sensor_mount_height', defaults.SENSOR_MOUNT_HEIGHT,
                            'Height of the sensor above the floor (m)',
                            (0.0, 5.0)),
    'sensor_tilt_angle': ('sensor_tilt_angle', defaults.SENSOR_TILT_ANGLE,
                          'Downward pitch of the sensor (deg)',
                          (-90.0, 90.0)),
    'ground_margin': ('ground_margin', defaults.GROUND_MARGIN,
                      'Tolerance above the expected floor distance (m)',
                      (0.0, 1.0)),
    'used_depth_height': ('used_depth_height', defaults.USED_DEPTH_HEIGHT,
                          'Rows used from the image bottom (px)',
                          (1, 4096)),
    'block_size': ('block_size', defaults.BLOCK_SIZE,
                   'Side of a square block (px)',
                   (1, 512)),
    'block_points_thresh': ('block_points_thresh', defaults.BLOCK_POINTS_THRESH,
                            'Cliff samples needed to flag a block',
                            (1, 10000)),
    'depth_img_step_row': ('depth_img_step_row', defaults.DEPTH_IMG_STEP_ROW,
                           'Rows between sampled pixels (px)',
                           (1, 64)),
    'depth_img_step_col': ('depth_img_step_col', defaults.DEPTH_IMG_STEP_COL,
                           'Columns between sampled pixels (px)',
                           (1, 64)),
    'publish_depth': ('publish_depth_enable', defaults.PUBLISH_DEPTH_ENABLE,
                      'Republish the depth image with flagged blocks marked',
                      None),
    'ground_frame_points': ('ground_frame_points', defaults.GROUND_FRAME_POINTS,
                            'Publish points in a floor-aligned frame instead of the optical frame',
                            None),
    'cam_model_update': ('cam_model_update', defaults.CAM_MODEL_UPDATE,
                         'Re-read the camera model on every frame',
                         None),
}


def parameter_descriptor(description, value_range):
    if value_range is None:
        return ParameterDescriptor(description=description)
    low, high = value_range
    if isinstance(low, int):
        return ParameterDescriptor(
            description=description,
            integer_range=[IntegerRange(from_value=low, to_value=high, step=1)],
        )
    return ParameterDescriptor(
        description=description,
        floating_point_range=[FloatingPointRange(from_value=low, to_value=high, step=0.0)],
    )


def detector_changes(params):
    """Map ROS parameters onto CliffDetector.configure() keyword arguments."""
    changes = {}
    for param in params:
        entry = DETECTOR_PARAMETERS.get(param.name)
        if entry is not None:
            changes[entry[0]] = param.value
    return changes


def polygon_from_points(points, header, frame_id=''):
    """Build a PolygonStamped with one Point32 per detected cliff point."""
    msg = PolygonStamped()
    msg.header = Header(stamp=header.stamp, frame_id=frame_id or header.frame_id)
    msg.polygon.points = [
        Point32(x=float(x), y=float(y), z=float(z)) for x, y, z in points
    ]
    return msg


class CliffDetectorNode(Node):
    """
    ROS2 node wrapping CliffDetector.

    Subscribes to image + camera_info, publishes points (PolygonStamped) and,
    when publish_depth is on, depth (Image).
    """

    def __init__(self):
        super().__init__('cliff_detector')
        self.get_logger().info('Initializing cliff detector...')

        # ─── Configuration Parameters ────────────────────────────────────────────
        for name, (_, default, description, value_range) in DETECTOR_PARAMETERS.items():
            self.declare_parameter(name, default, parameter_descriptor(description, value_range))
        self.declare_parameter(
            'output_frame_id', defaults.OUTPUT_FRAME_ID,
            ParameterDescriptor(description='Frame of the published points, empty = image frame'))
        self.declare_parameter(
            'queue_size', 5, ParameterDescriptor(
                description='Image / camera info sync queue, fixed at startup', read_only=True))

        self.output_frame_id = self.get_parameter('output_frame_id').get_parameter_value().string_value
        queue_size = self.get_parameter('queue_size').get_parameter_value().integer_value

        # ─── Detector Setup ──────────────────────────────────────────────────────
        self.detector = CliffDetector(PinholeCameraModel())
        try:
            self.detector.configure(**detector_changes(
                self.get_parameter(name) for name in DETECTOR_PARAMETERS))
        except InvalidConfiguration as e:
            self.get_logger().error(f'Invalid cliff detector parameters: {e}')
            raise

        cal = self.detector.calibration
        scan = self.detector.scan_config
        self.get_logger().info(
            f'Sensor: height {cal.sensor_mount_height:.3f} m, tilt {cal.sensor_tilt_angle:.1f} deg, '
            f'range [{cal.range_min:.2f}, {cal.range_max:.2f}] m, margin {cal.ground_margin:.3f} m')
        self.get_logger().info(
            f'Scan: {scan.used_depth_height} rows, block {scan.block_size} px, '
            f'thresh {scan.block_points_thresh}, step {scan.depth_img_step_row}x{scan.depth_img_step_col}')

        self.add_on_set_parameters_callback(self.parameter_callback)

        # ─── ROS2 Communication Setup ────────────────────────────────────────────
        self.bridge = CvBridge()
        self.pub_points = self.create_publisher(PolygonStamped, 'points', 10)
        self.pub_depth = self.create_publisher(Image, 'depth', 10)

        self.sub_image = Subscriber(self, Image, 'image')
        self.sub_info = Subscriber(self, CameraInfo, 'camera_info')
        self.sync = TimeSynchronizer([self.sub_image, self.sub_info], queue_size)
        self.sync.registerCallback(self.depth_callback)

        self.frame_count = 0
        self.get_logger().info('Cliff detector ready - waiting for depth images')

    # ─── Parameter Updates ───────────────────────────────────────────────────────

    def parameter_callback(self, params):
        try:
            self.detector.configure(**detector_changes(params))
        except InvalidConfiguration as e:
            self.get_logger().warn(f'Rejected parameter update: {e}')
            return SetParametersResult(successful=False, reason=str(e))

        for param in params:
            if param.name == 'output_frame_id':
                self.output_frame_id = param.value
            self.get_logger().info(f'Parameter {param.name} set to {param.value}')
        return SetParametersResult(successful=True)

    # ─── Frame Processing ────────────────────────────────────────────────────────

    def depth_callback(self, image_msg: Image, info_msg: CameraInfo):
        self.frame_count += 1
        try:
            depth = self.bridge.imgmsg_to_cv2(image_msg, desired_encoding='passthrough')
        except CvBridgeError as e:
            self.get_logger().error(f'Could not convert depth image ({image_msg.encoding}): {e}')
            return

        try:
            result = self.detector.detect(depth, info_msg, encoding=image_msg.encoding)
        except CliffDetectorError as e:
            self.get_logger().error(
                f'Cliff detection failed on frame {self.frame_count}: {e}',
                throttle_duration_sec=5.0)
            self.pub_points.publish(polygon_from_points([], image_msg.header, self.output_frame_id))
            return

        self.pub_points.publish(
            polygon_from_points(result.points, image_msg.header, self.output_frame_id))
        self.get_logger().debug(
            f'Frame {self.frame_count}: {len(result)} cliff blocks')

        if result.annotated_depth is not None:
            depth_msg = self.bridge.cv2_to_imgmsg(result.annotated_depth, encoding=image_msg.encoding)
            depth_msg.header = image_msg.header
            self.pub_depth.publish(depth_msg)


def main(args=None):
    rclpy.init(args=args)
    node = CliffDetectorNode()
    try:
        rclpy.spin(node)
    except KeyboardInterrupt:
        node.get_logger().info('Shutting down cliff detector')
    finally:
        node.destroy_node()
        if rclpy.ok():
            rclpy.shutdown()


if __name__ == '__main__':
    main()
