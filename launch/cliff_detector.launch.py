# launch/cliff_detector.launch.py
import os
from ament_index_python.packages import get_package_share_directory
from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node

def generate_launch_description():
    # allow overriding the parameter file and depth topics at launch time
    params_arg = DeclareLaunchArgument(
        'params_file',
        default_value=os.path.join(
            get_package_share_directory('cliff_detector'),
            'config',
            'cliff_detector_params.yaml'
        ),
        description='Absolute path to the cliff detector parameter file'
    )
    image_arg = DeclareLaunchArgument(
        'depth_image',
        default_value='/camera/depth/image_rect_raw',
        description='Depth image topic (16UC1 or 32FC1)'
    )
    info_arg = DeclareLaunchArgument(
        'camera_info',
        default_value='/camera/depth/camera_info',
        description='CameraInfo topic of the depth image'
    )
    points_arg = DeclareLaunchArgument(
        'cliff_points',
        default_value='/cliff_detector/points',
        description='Output PolygonStamped topic'
    )

    cliff_node = Node(
        package='cliff_detector',
        executable='cliff_detector_node',
        name='cliff_detector',
        output='screen',
        parameters=[LaunchConfiguration('params_file')],
        remappings=[
            ('image', LaunchConfiguration('depth_image')),
            ('camera_info', LaunchConfiguration('camera_info')),
            ('points', LaunchConfiguration('cliff_points')),
            ('depth', '/cliff_detector/depth'),
        ]
    )

    return LaunchDescription([
        params_arg,
        image_arg,
        info_arg,
        points_arg,
        cliff_node,
    ])
