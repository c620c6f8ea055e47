import math

import numpy as np
import pytest

from vslam.rotation import (
    angle_axis_rotate_point,
    angle_axis_to_quaternion,
    cross_product,
    dot_product,
    quaternion_to_angle_axis,
)

ANGLE_AXES = [
    [0.1, -0.2, 0.05],
    [1.0, 0.5, -0.3],
    [0.0, 0.0, 2.5],
    [-1.2, 1.1, 0.4],
]


def test_cross_product_of_unit_axes():
    result = cross_product([1.0, 0.0, 0.0], [0.0, 1.0, 0.0])
    np.testing.assert_allclose(result, [0.0, 0.0, 1.0])


def test_cross_product_is_orthogonal_to_inputs():
    x = [1.5, -2.0, 0.3]
    y = [0.7, 4.0, -1.1]
    c = cross_product(x, y)
    assert dot_product(c, x) == pytest.approx(0.0, abs=1e-12)
    assert dot_product(c, y) == pytest.approx(0.0, abs=1e-12)


def test_cross_product_is_antisymmetric():
    x = [1.5, -2.0, 0.3]
    y = [0.7, 4.0, -1.1]
    np.testing.assert_allclose(cross_product(x, y), -cross_product(y, x))


def test_dot_product_value():
    assert dot_product([1, 2, 3], [4, 5, 6]) == 32.0


def test_dot_product_is_symmetric():
    assert dot_product([1.1, -2, 3.5], [4, 0.5, -6]) == dot_product([4, 0.5, -6], [1.1, -2, 3.5])


def test_wrong_length_raises():
    with pytest.raises(ValueError):
        dot_product([1, 2], [3, 4])
    with pytest.raises(ValueError):
        angle_axis_rotate_point([0, 0, 1, 0], [1, 2, 3])


def test_rotate_quarter_turn_about_z():
    result = angle_axis_rotate_point([0.0, 0.0, math.pi / 2], [1.0, 0.0, 0.0])
    np.testing.assert_allclose(result, [0.0, 1.0, 0.0], atol=1e-12)


def test_zero_rotation_leaves_point_unchanged():
    point = [3.0, -1.0, 2.0]
    np.testing.assert_allclose(angle_axis_rotate_point([0.0, 0.0, 0.0], point), point)


def test_small_angle_uses_first_order_form():
    angle_axis = np.array([1e-10, -2e-10, 3e-10])
    point = np.array([1.0, 2.0, 3.0])
    result = angle_axis_rotate_point(angle_axis, point)
    np.testing.assert_allclose(result, point + cross_product(angle_axis, point))


@pytest.mark.parametrize("angle_axis", ANGLE_AXES)
def test_rotation_preserves_norm(angle_axis):
    point = np.array([0.3, -4.0, 2.2])
    rotated = angle_axis_rotate_point(angle_axis, point)
    assert np.linalg.norm(rotated) == pytest.approx(np.linalg.norm(point))


@pytest.mark.parametrize("angle_axis", ANGLE_AXES)
def test_inverse_rotation_round_trip(angle_axis):
    point = np.array([0.3, -4.0, 2.2])
    rotated = angle_axis_rotate_point(angle_axis, point)
    back = angle_axis_rotate_point(-np.asarray(angle_axis), rotated)
    np.testing.assert_allclose(back, point, atol=1e-12)


@pytest.mark.parametrize("angle_axis", ANGLE_AXES)
def test_quaternion_round_trip(angle_axis):
    q = angle_axis_to_quaternion(angle_axis)
    np.testing.assert_allclose(quaternion_to_angle_axis(q), angle_axis, atol=1e-12)


@pytest.mark.parametrize("angle_axis", ANGLE_AXES)
def test_quaternion_has_unit_norm(angle_axis):
    q = angle_axis_to_quaternion(angle_axis)
    assert np.linalg.norm(q) == pytest.approx(1.0)


def test_quaternion_round_trip_near_zero():
    zero = [0.0, 0.0, 0.0]
    np.testing.assert_allclose(quaternion_to_angle_axis(angle_axis_to_quaternion(zero)), zero)


@pytest.mark.parametrize("angle_axis", ANGLE_AXES)
def test_negated_quaternion_gives_same_angle_axis(angle_axis):
    q = angle_axis_to_quaternion(angle_axis)
    np.testing.assert_allclose(
        quaternion_to_angle_axis(-q), quaternion_to_angle_axis(q), atol=1e-12
    )