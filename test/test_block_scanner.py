import numpy as np
import pytest

from cliff_detector.detection.block_scanner import (
    Block,
    block_layout,
    classify_samples,
    mark_blocks,
    scan_blocks,
)
from cliff_detector.detection.config import ScanConfig
from cliff_detector.detection.defaults import NO_GROUND_INTERSECTION
from cliff_detector.detection.depth_image import MeterDepthImage, MillimeterDepthImage
from cliff_detector.detection.errors import MalformedFrame
from cliff_detector.detection.row_geometry import RowGeometryTable

HEIGHT, WIDTH, FIRST_ROW = 10, 7, 3


def flat_table(expected_mm=1000, compensation=1.0):
    used = HEIGHT - FIRST_ROW
    return RowGeometryTable(
        first_row=FIRST_ROW,
        image_height=HEIGHT,
        delta_angle=np.zeros(used),
        expected_ground_distance=np.full(used, expected_mm, dtype=np.int64),
        tilt_compensation=np.full(used, compensation),
    )


def scan_config(block_size=4, thresh=9, step_row=1, step_col=1):
    return ScanConfig(
        used_depth_height=HEIGHT - FIRST_ROW,
        block_size=block_size,
        block_points_thresh=thresh,
        depth_img_step_row=step_row,
        depth_img_step_col=step_col,
    )


def frame(value):
    return MeterDepthImage(np.full((HEIGHT, WIDTH), value, dtype=np.float64))


def test_layout_is_bottom_anchored_and_ordered():
    assert list(block_layout(HEIGHT, WIDTH, FIRST_ROW, 4)) == [
        (6, 10, 0, 4), (6, 10, 4, 7),
        (3, 6, 0, 4), (3, 6, 4, 7),
    ]


def test_layout_exact_fit_has_no_partial_blocks():
    blocks = list(block_layout(8, 8, 0, 4))
    assert len(blocks) == 4
    assert all(b - t == 4 and r - l == 4 for t, b, l, r in blocks)


def test_partial_blocks_use_the_same_threshold():
    table = flat_table()
    found = scan_blocks(frame(2.0), table, scan_config(thresh=9), 0.5, 5.0, 0.05)
    assert [(b.top, b.left, b.count) for b in found] == [(6, 0, 16), (6, 4, 12), (3, 0, 12), (3, 4, 9)]

    found = scan_blocks(frame(2.0), table, scan_config(thresh=10), 0.5, 5.0, 0.05)
    assert [(b.top, b.left) for b in found] == [(6, 0), (6, 4), (3, 0)]


def test_flat_floor_flags_nothing():
    found = scan_blocks(frame(1.0), flat_table(), scan_config(thresh=1), 0.5, 5.0, 0.05)
    assert found == []


def test_margin_is_strict():
    # exactly expected + margin is still floor
    found = scan_blocks(frame(1.25), flat_table(), scan_config(thresh=1), 0.5, 5.0, 0.25)
    assert found == []


def test_step_subsampling_counts_grid_samples():
    found = scan_blocks(frame(2.0), flat_table(), scan_config(thresh=1, step_row=2, step_col=2),
                        0.5, 5.0, 0.05)
    # rows 6,8 x cols 0,2 in the first block; rows 3,5 x cols 4,6 in the last
    assert [b.count for b in found] == [4, 4, 4, 4]


def test_block_center_and_mean_distance():
    depth = np.full((HEIGHT, WIDTH), 1.0)
    depth[6:10, 0:4] = 2.0
    depth[6, 0] = 3.0
    found = scan_blocks(MeterDepthImage(depth), flat_table(), scan_config(thresh=1), 0.5, 5.0, 0.05)
    assert len(found) == 1
    block = found[0]
    assert block.center == (7.5, 1.5)
    assert block.count == 16
    assert block.distance == pytest.approx((15 * 2.0 + 3.0) / 16)


def test_compensation_scales_ray_distance():
    # 0.6 m of optical depth is 1.2 m along a ray with compensation 0.5
    found = scan_blocks(frame(0.6), flat_table(compensation=0.5), scan_config(thresh=1),
                        0.5, 5.0, 0.05)
    assert len(found) == 4
    assert found[0].distance == pytest.approx(1.2)


def test_range_band_is_inclusive():
    table = flat_table()
    assert len(scan_blocks(frame(2.0), table, scan_config(thresh=1), 0.5, 2.0, 0.05)) == 4
    assert scan_blocks(frame(2.0), table, scan_config(thresh=1), 0.5, 1.999, 0.05) == []
    assert scan_blocks(frame(2.0), table, scan_config(thresh=1), 2.001, 5.0, 0.05) == []


def test_invalid_samples_are_ignored():
    depth = np.zeros((HEIGHT, WIDTH), dtype=np.uint16)
    found = scan_blocks(MillimeterDepthImage(depth), flat_table(), scan_config(thresh=1),
                        0.0, 5.0, 0.0)
    assert found == []


def test_rows_without_floor_are_never_cliffs():
    table = flat_table()
    table.expected_ground_distance[0] = NO_GROUND_INTERSECTION
    cliff, _ = classify_samples(frame(200.0), table, np.arange(FIRST_ROW, HEIGHT), np.arange(WIDTH),
                                0.5, 1000.0, 0.05)
    assert not cliff[0].any()
    assert cliff[1:].all()


def test_height_mismatch_raises():
    depth = MeterDepthImage(np.full((HEIGHT + 1, WIDTH), 2.0))
    with pytest.raises(MalformedFrame):
        scan_blocks(depth, flat_table(), scan_config(), 0.5, 5.0, 0.05)


def test_mark_blocks_blanks_flagged_area_only():
    depth = frame(2.0)
    marked = mark_blocks(depth, [Block(6, 10, 4, 7, 12, 2.0)])
    assert (marked[6:10, 4:7] == 0).all()
    assert (marked[:6] == 2.0).all()
    assert (marked[:, :4] == 2.0).all()
    assert (depth.data == 2.0).all()


class CountingDepthImage(MeterDepthImage):
    """Records how many pixels get converted to meters."""

    def __init__(self, data):
        super().__init__(data)
        self.converted = 0

    def to_meters(self, raw):
        self.converted += raw.size
        return super().to_meters(raw)


def test_only_sampled_pixels_are_converted():
    depth = CountingDepthImage(np.full((HEIGHT, WIDTH), 2.0))
    found = scan_blocks(depth, flat_table(), scan_config(thresh=1, step_row=2, step_col=2),
                        0.5, 5.0, 0.05)
    # rows 6,8,3,5 x cols 0,2,4,6
    assert depth.converted == 16
    assert len(found) == 4


def test_larger_steps_convert_fewer_pixels(table):
    full = CountingDepthImage(np.full((480, 640), 2.0))
    scan_blocks(full, table, ScanConfig(240, 8, 1, 1, 1), 0.5, 5.0, 0.05)
    sparse = CountingDepthImage(np.full((480, 640), 2.0))
    scan_blocks(sparse, table, ScanConfig(240, 8, 1, 8, 8), 0.5, 5.0, 0.05)
    assert full.converted == 240 * 640
    assert sparse.converted == 30 * 80


@pytest.mark.parametrize('value, range_min, range_max', [
    (1.1, 0.5, 1.1),
    (0.7, 0.7, 5.0),
])
def test_float32_samples_on_range_bounds_count(value, range_min, range_max):
    table = flat_table(expected_mm=500)
    depth = MeterDepthImage(np.full((HEIGHT, WIDTH), value, dtype=np.float32))
    found = scan_blocks(depth, table, scan_config(thresh=1), range_min, range_max, 0.05)
    assert len(found) == 4


def test_float32_and_millimeter_frames_agree_on_range_max():
    table = flat_table()
    meters = MeterDepthImage(np.full((HEIGHT, WIDTH), 1.1, dtype=np.float32))
    millimeters = MillimeterDepthImage(np.full((HEIGHT, WIDTH), 1100, dtype=np.uint16))
    from_meters = scan_blocks(meters, table, scan_config(thresh=1), 0.5, 1.1, 0.05)
    from_millimeters = scan_blocks(millimeters, table, scan_config(thresh=1), 0.5, 1.1, 0.05)
    assert [(b.top, b.left, b.count) for b in from_meters] == \
        [(b.top, b.left, b.count) for b in from_millimeters]
    assert len(from_meters) == 4
