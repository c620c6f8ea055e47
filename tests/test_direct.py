import numpy as np
import pytest

from vslam.direct import (
    Intrinsics,
    JacobianAccumulator,
    direct_pose_estimation_multi_layer,
    direct_pose_estimation_single_layer,
    interpolate_pixel,
)
from vslam.lie import SE3

ROWS, COLS = 120, 160
K = Intrinsics(100.0, 100.0, 80.0, 60.0)


def texture(shift_x=0.0):
    ys, xs = np.mgrid[0:ROWS, 0:COLS].astype(float)
    x = xs - shift_x
    return 120 + 50 * np.sin(x / 4.0) + 40 * np.cos(ys / 5.0) + 20 * np.sin((x + ys) / 6.0)


def reference_points(n=150, seed=3):
    rng = np.random.default_rng(seed)
    px = np.column_stack([rng.uniform(20, COLS - 20, n), rng.uniform(20, ROWS - 20, n)])
    return px, np.full(n, 10.0)


def test_interpolate_on_ramp_is_exact():
    ys, xs = np.mgrid[0:6, 0:8].astype(float)
    ramp = 2 * xs + 3 * ys
    assert interpolate_pixel(ramp, 2, 1) == pytest.approx(ramp[1, 2])
    assert interpolate_pixel(ramp, 2.5, 1.25) == pytest.approx(2 * 2.5 + 3 * 1.25)


def test_interpolate_clamps_outside():
    img = np.arange(20, dtype=float).reshape(4, 5)
    assert interpolate_pixel(img, -3, -7) == pytest.approx(img[0, 0])
    assert interpolate_pixel(img, 10, 2) == pytest.approx(img[2, 4])
    assert interpolate_pixel(img, 1, 99) == pytest.approx(img[3, 1])


def test_interpolate_rejects_colour_image():
    with pytest.raises(ValueError):
        interpolate_pixel(np.zeros((4, 4, 3)), 1, 1)


def test_intrinsics_scaled():
    half = K.scaled(0.5)
    assert (half.fx, half.fy, half.cx, half.cy) == (50.0, 50.0, 40.0, 30.0)


def test_identical_images_give_zero_cost_and_bias():
    img = texture()
    px, depth = reference_points()
    acc = JacobianAccumulator(img, img, px, depth, SE3(), K)
    acc.accumulate(0, len(px))
    assert acc.cost == pytest.approx(0.0, abs=1e-9)
    assert np.allclose(acc.bias, 0.0, atol=1e-8)
    assert np.allclose(acc.hessian, acc.hessian.T)
    assert np.all(np.linalg.eigvalsh(acc.hessian) > -1e-6)
    assert np.allclose(acc.projected_points, px)


def test_points_behind_camera_are_ignored():
    img = texture()
    px, depth = reference_points(10)
    acc = JacobianAccumulator(img, img, px, -depth, SE3(), K)
    acc.accumulate()
    assert acc.cost == 0.0
    assert np.all(acc.hessian == 0.0)
    assert np.all(acc.projected_points == 0.0)


def test_split_ranges_sum_to_whole_system():
    img1, img2 = texture(), texture(0.7)
    px, depth = reference_points(60)
    whole = JacobianAccumulator(img1, img2, px, depth, SE3(), K)
    whole.accumulate(0, 60)
    split = JacobianAccumulator(img1, img2, px, depth, SE3(), K)
    split.accumulate(0, 25)
    split.accumulate(25, 60)
    assert np.allclose(whole.hessian, split.hessian)
    assert np.allclose(whole.bias, split.bias)


def test_reset_clears_system():
    img1, img2 = texture(), texture(0.7)
    px, depth = reference_points(20)
    acc = JacobianAccumulator(img1, img2, px, depth, SE3(), K)
    acc.accumulate()
    assert acc.cost > 0.0
    acc.reset()
    assert acc.cost == 0.0
    assert np.all(acc.bias == 0.0)


def test_invalid_inputs_raise():
    img = texture()
    px, depth = reference_points(5)
    with pytest.raises(ValueError):
        JacobianAccumulator(img, img, px, depth[:3], SE3(), K)
    acc = JacobianAccumulator(img, img, px, depth, SE3(), K)
    with pytest.raises(ValueError):
        acc.accumulate(3, 9)


def test_single_layer_identity_on_same_image():
    img = texture()
    px, depth = reference_points()
    pose = direct_pose_estimation_single_layer(img, img, px, depth, SE3(), K)
    assert np.allclose(pose.matrix(), np.eye(4), atol=1e-6)


def test_single_layer_recovers_image_shift():
    img1, img2 = texture(), texture(1.0)
    px, depth = reference_points()
    pose = direct_pose_estimation_single_layer(img1, img2, px, depth, SE3(), K)
    acc = JacobianAccumulator(img1, img2, px, depth, pose, K)
    acc.accumulate()
    displacement = acc.projected_points - px
    assert np.median(displacement[:, 0]) == pytest.approx(1.0, abs=0.3)
    assert np.median(np.abs(displacement[:, 1])) < 0.3


def test_multi_layer_identity_on_same_image():
    img = texture()
    px, depth = reference_points()
    pose = direct_pose_estimation_multi_layer(img, img, px, depth, SE3(), K)
    assert np.allclose(pose.rotation, np.eye(3), atol=1e-3)
    assert np.allclose(pose.translation, 0.0, atol=1e-2)