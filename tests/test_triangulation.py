import numpy as np
import pytest

from vslam.lie import so3_exp
from vslam.triangulation import (
    depth_color,
    epipolar_constraint,
    pixel2cam,
    skew,
    triangulate,
)

K = np.array([[520.9, 0.0, 325.1], [0.0, 521.0, 249.7], [0.0, 0.0, 1.0]])


def _scene():
    R = so3_exp([0.02, -0.05, 0.01])
    t = np.array([-0.8, 0.05, 0.1])
    points = np.array(
        [
            [0.3, -0.2, 4.0],
            [-0.5, 0.4, 6.0],
            [1.0, 0.9, 8.0],
            [-1.2, -0.7, 5.5],
            [0.0, 0.0, 3.0],
        ]
    )
    return R, t, points


def _project(points, R, t):
    cam = points @ R.T + t
    pix = cam @ K.T
    return pix[:, :2] / pix[:, 2:3]


def test_pixel2cam_principal_point_is_origin():
    assert np.allclose(pixel2cam([325.1, 249.7], K), [0.0, 0.0])


def test_skew_matches_cross_product():
    t = np.array([1.0, -2.0, 0.5])
    v = np.array([0.3, 0.7, -1.1])
    assert np.allclose(skew(t) @ v, np.cross(t, v))
    assert np.allclose(skew(t), -skew(t).T)


def test_triangulate_recovers_points():
    R, t, points = _scene()
    recovered = triangulate(_project(points, np.eye(3), np.zeros(3)), _project(points, R, t), R, t, K)
    assert recovered.shape == points.shape
    assert np.allclose(recovered, points, atol=1e-6)


def test_epipolar_constraint_vanishes_for_true_matches():
    R, t, points = _scene()
    px1 = _project(points, np.eye(3), np.zeros(3))
    px2 = _project(points, R, t)
    for a, b in zip(px1, px2):
        assert abs(epipolar_constraint(a, b, R, t, K)) < 1e-9


def test_epipolar_constraint_nonzero_for_wrong_match():
    R, t, points = _scene()
    px1 = _project(points, np.eye(3), np.zeros(3))
    px2 = _project(points, R, t)
    assert abs(epipolar_constraint(px1[0], px2[2], R, t, K)) > 1e-4


def test_triangulate_length_mismatch():
    R, t, _ = _scene()
    with pytest.raises(ValueError):
        triangulate([[1.0, 2.0]], [[1.0, 2.0], [3.0, 4.0]], R, t, K)


def test_depth_color_clamps():
    assert depth_color(100.0) == depth_color(50.0)
    assert depth_color(-3.0) == depth_color(10.0)
    assert depth_color(10.0) == (63.75, 0.0, 191.25)


def test_depth_color_green_is_zero_and_blue_grows():
    near = depth_color(12.0)
    far = depth_color(40.0)
    assert near[1] == 0.0 and far[1] == 0.0
    assert far[0] > near[0]
    assert far[2] < near[2]