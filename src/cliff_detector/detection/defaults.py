# defaults.py

# ─── Depth Sensor Range ──────────────────────────────────────────────────────────
RANGE_MIN           = 0.5    # meters, below it is the sensor's dead zone
RANGE_MAX           = 5.0    # meters

# ─── Sensor Mount ────────────────────────────────────────────────────────────────
SENSOR_MOUNT_HEIGHT = 0.4    # meters above the floor
SENSOR_TILT_ANGLE   = 20.0   # degrees, downward pitch of the optical axis

# ─── Block Scanning ──────────────────────────────────────────────────────────────
USED_DEPTH_HEIGHT   = 240    # px counted up from the image bottom
BLOCK_SIZE          = 8      # px, side of a square block
BLOCK_POINTS_THRESH = 10     # cliff samples needed to flag a block
DEPTH_IMG_STEP_ROW  = 2      # px between sampled rows
DEPTH_IMG_STEP_COL  = 2      # px between sampled columns
GROUND_MARGIN       = 0.05   # meters of tolerance above the expected floor

# ─── Outputs ─────────────────────────────────────────────────────────────────────
PUBLISH_DEPTH_ENABLE = False
GROUND_FRAME_POINTS  = False
CAM_MODEL_UPDATE     = False
OUTPUT_FRAME_ID      = ''    # empty = keep the depth image frame

# ─── Row Geometry ────────────────────────────────────────────────────────────────
NO_GROUND_INTERSECTION = 100000  # mm, rows whose ray never meets the floor
MM_PER_M               = 1000.0
