from setuptools import find_packages, setup

package_name = 'cliff_detector'

setup(
    name=package_name,
    version='0.1.0',
    # <-- src layout: look here for packages
    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    install_requires=[
        'setuptools',
        'numpy',
    ],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=True,
    maintainer='vincent',
    maintainer_email='vincent@todo.todo',
    description='Depth image cliff (descending stairs / ledge) detector for ground robots',
    license='Apache-2.0',
    entry_points={
        'console_scripts': [
            'cliff_detector_node = cliff_detector.node.cliff_detector_node:main',
        ],
    },
    data_files=[
        ('share/ament_index/resource_index/packages', ['resource/' + package_name]),
        ('share/' + package_name, ['package.xml']),
        ('share/' + package_name + '/launch', ['launch/cliff_detector.launch.py']),
        ('share/' + package_name + '/config', ['config/cliff_detector_params.yaml']),
    ],
)
