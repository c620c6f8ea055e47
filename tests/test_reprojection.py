import numpy as np
import pytest

from vslam.reprojection import SnavelyReprojectionError, cam_projection_with_distortion

CAMERA = np.array([0.1, -0.2, 0.05, 0.3, -0.1, -5.0, 500.0, 0.01, -0.001])
POINT = np.array([0.5, 0.2, 1.0])


def test_identity_camera_projection():
    camera = [0, 0, 0, 0, 0, 0, 1.0, 0, 0]
    np.testing.assert_allclose(cam_projection_with_distortion(camera, [2.0, 4.0, -2.0]), [1.0, 2.0])


def test_residual_zero_at_prediction():
    prediction = cam_projection_with_distortion(CAMERA, POINT)
    residual = SnavelyReprojectionError(prediction[0], prediction[1])(CAMERA, POINT)
    np.testing.assert_allclose(residual, [0.0, 0.0], atol=1e-12)


def test_residual_shifts_with_observation():
    r1 = SnavelyReprojectionError(10.0, 20.0)(CAMERA, POINT)
    r2 = SnavelyReprojectionError(13.0, 15.0)(CAMERA, POINT)
    np.testing.assert_allclose(r1 - r2, [3.0, -5.0])


def test_focal_length_scales_prediction():
    doubled = CAMERA.copy()
    doubled[6] *= 2
    np.testing.assert_allclose(
        cam_projection_with_distortion(doubled, POINT),
        2 * cam_projection_with_distortion(CAMERA, POINT),
    )


def test_positive_distortion_pushes_outward():
    plain = CAMERA.copy()
    plain[7:] = 0.0
    distorted = plain.copy()
    distorted[7] = 0.5
    base = cam_projection_with_distortion(plain, POINT)
    bent = cam_projection_with_distortion(distorted, POINT)
    assert np.linalg.norm(bent) > np.linalg.norm(base)


def test_bad_shapes_raise():
    with pytest.raises(ValueError):
        cam_projection_with_distortion(CAMERA[:8], POINT)
    with pytest.raises(ValueError):
        cam_projection_with_distortion(CAMERA, POINT[:2])