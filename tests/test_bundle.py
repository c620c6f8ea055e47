import random

import numpy as np
import pytest

from vslam.bal import BALProblem
from vslam.bundle import PoseAndIntrinsics, main, solve_ba
from vslam.reprojection import SnavelyReprojectionError, cam_projection_with_distortion

CAMERAS = np.array(
    [
        [0.01, -0.02, 0.03, 0.1, -0.2, -10.0, 500.0, 1e-3, 1e-6],
        [-0.03, 0.05, 0.02, -0.5, 0.3, -11.0, 480.0, -2e-3, 2e-6],
    ]
)


def _points():
    gen = np.random.default_rng(7)
    return gen.uniform(-2.0, 2.0, size=(12, 3))


def _write_bal(path):
    points = _points()
    lines = [f"{len(CAMERAS)} {len(points)} {len(CAMERAS) * len(points)}"]
    for ci, cam in enumerate(CAMERAS):
        for pi, pt in enumerate(points):
            u, v = cam_projection_with_distortion(cam, pt)
            lines.append(f"{ci} {pi} {u!r} {v!r}")
    lines.extend(repr(float(v)) for v in CAMERAS.ravel())
    lines.extend(repr(float(v)) for v in points.ravel())
    path.write_text("\n".join(lines) + "\n")
    return path


def _total_error(problem):
    total = 0.0
    for i in range(problem.num_observations):
        err = SnavelyReprojectionError(*problem.observations[i])
        r = err(problem.camera_for_observation(i), problem.point_for_observation(i))
        total += float(r @ r)
    return total


def test_pose_round_trip():
    cam = CAMERAS[0]
    pose = PoseAndIntrinsics.from_camera(cam)
    assert np.allclose(pose.to_array(), cam, atol=1e-12)


def test_project_matches_model_without_distortion():
    cam = CAMERAS[1].copy()
    cam[7:] = 0.0
    pose = PoseAndIntrinsics.from_camera(cam)
    for pt in _points():
        assert np.allclose(pose.project(pt), cam_projection_with_distortion(cam, pt))


def test_project_on_axis_is_origin():
    pose = PoseAndIntrinsics(focal=300.0, k1=0.1, k2=0.2)
    assert np.allclose(pose.project([0.0, 0.0, -1.0]), [0.0, 0.0])


def test_from_camera_rejects_wrong_size():
    with pytest.raises(ValueError):
        PoseAndIntrinsics.from_camera([1.0, 2.0, 3.0])


def test_solve_ba_reduces_error(tmp_path):
    problem = BALProblem(_write_bal(tmp_path / "bal.txt"))
    assert _total_error(problem) < 1e-12
    problem.perturb(0.0, 0.0, 0.05, random.Random(3))
    before = _total_error(problem)
    result = solve_ba(problem, max_iterations=100)
    after = _total_error(problem)
    assert before > 1.0
    assert after < before * 1e-2
    assert np.allclose(problem.parameters, result.x)


def test_solve_ba_rejects_quaternions(tmp_path):
    problem = BALProblem(_write_bal(tmp_path / "bal.txt"), use_quaternions=True)
    with pytest.raises(ValueError):
        solve_ba(problem)


def test_main_usage():
    assert main([]) == 1
    assert main(["a", "b"]) == 1


def test_main_writes_ply(tmp_path, monkeypatch):
    data = _write_bal(tmp_path / "bal.txt")
    monkeypatch.chdir(tmp_path)
    random.seed(1)
    assert main([str(data)]) == 0
    for name in ("initial.ply", "final.ply"):
        lines = (tmp_path / name).read_text().splitlines()
        assert lines[0] == "ply"
        assert lines[2] == "element vertex 14"
        assert len(lines) == 10 + 14