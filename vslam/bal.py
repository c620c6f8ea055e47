"""Bundle adjustment problems in the BAL text format."""

from __future__ import annotations

import random
from pathlib import Path

import numpy as np

from .rotation import (
    angle_axis_rotate_point,
    angle_axis_to_quaternion,
    quaternion_to_angle_axis,
)
from .sampling import rand_normal

POINT_BLOCK_SIZE = 3


class BALFormatError(ValueError):
    """Raised when a BAL data file cannot be parsed."""


def median(data) -> float:
    """Return the element at position n // 2 of the sorted data."""
    values = sorted(float(v) for v in data)
    if not values:
        raise ValueError("median of empty data")
    return values[len(values) // 2]


def perturb_point3(sigma, point, rng=None) -> np.ndarray:
    """Return ``point`` with normal noise of deviation ``sigma`` added to each axis."""
    base = np.asarray(point, dtype=float)
    noise = np.array([rand_normal(rng) * sigma for _ in range(3)])
    return base + noise


def _tokens(text: str):
    yield from text.split()


def _take(tokens, kind, what: str):
    try:
        token = next(tokens)
    except StopIteration:
        raise BALFormatError(f"Invalid BAL data file: missing {what}") from None
    try:
        return kind(token)
    except ValueError:
        raise BALFormatError(f"Invalid BAL data file: bad {what} {token!r}") from None


class BALProblem:
    """Cameras, points and observations of a bundle adjustment problem."""

    def __init__(self, filename, use_quaternions=False):
        tokens = _tokens(Path(filename).read_text())

        num_cameras = _take(tokens, int, "camera count")
        num_points = _take(tokens, int, "point count")
        num_observations = _take(tokens, int, "observation count")
        if min(num_cameras, num_points, num_observations) < 0:
            raise BALFormatError("Invalid BAL data file: negative count in header")

        self._num_cameras = num_cameras
        self._num_points = num_points

        camera_index = []
        point_index = []
        observations = []
        for _ in range(num_observations):
            camera_index.append(_take(tokens, int, "camera index"))
            point_index.append(_take(tokens, int, "point index"))
            observations.append(
                (_take(tokens, float, "observation"), _take(tokens, float, "observation"))
            )
        self.camera_index = np.array(camera_index, dtype=int)
        self.point_index = np.array(point_index, dtype=int)
        self.observations = np.array(observations, dtype=float).reshape(num_observations, 2)

        count = 9 * num_cameras + POINT_BLOCK_SIZE * num_points
        parameters = np.array([_take(tokens, float, "parameter") for _ in range(count)])

        self.use_quaternions = bool(use_quaternions)
        if self.use_quaternions:
            cameras = parameters[: 9 * num_cameras].reshape(num_cameras, 9)
            rows = [np.concatenate([angle_axis_to_quaternion(c[:3]), c[3:]]) for c in cameras]
            parameters = np.concatenate(rows + [parameters[9 * num_cameras:]])
        self.parameters = parameters.astype(float)

    @property
    def camera_block_size(self) -> int:
        return 10 if self.use_quaternions else 9

    @property
    def point_block_size(self) -> int:
        return POINT_BLOCK_SIZE

    @property
    def num_cameras(self) -> int:
        return self._num_cameras

    @property
    def num_points(self) -> int:
        return self._num_points

    @property
    def num_observations(self) -> int:
        return len(self.camera_index)

    @property
    def num_parameters(self) -> int:
        return self.parameters.size

    @property
    def cameras(self) -> np.ndarray:
        """Writable view of the camera blocks, one row per camera."""
        end = self.camera_block_size * self._num_cameras
        return self.parameters[:end].reshape(self._num_cameras, self.camera_block_size)

    @property
    def points(self) -> np.ndarray:
        """Writable view of the points, one row per point."""
        start = self.camera_block_size * self._num_cameras
        return self.parameters[start:].reshape(self._num_points, POINT_BLOCK_SIZE)

    def camera_for_observation(self, i) -> np.ndarray:
        return self.cameras[self.camera_index[i]]

    def point_for_observation(self, i) -> np.ndarray:
        return self.points[self.point_index[i]]

    def _translation_slice(self) -> slice:
        offset = self.camera_block_size - 6
        return slice(offset, offset + 3)

    def _camera_to_angle_axis_and_center(self, camera):
        if self.use_quaternions:
            angle_axis = quaternion_to_angle_axis(camera[:4])
        else:
            angle_axis = np.array(camera[:3], dtype=float)
        # c = -R't
        center = -angle_axis_rotate_point(-angle_axis, camera[self._translation_slice()])
        return angle_axis, center

    def _angle_axis_and_center_to_camera(self, angle_axis, center, camera) -> np.ndarray:
        result = np.array(camera, dtype=float)
        if self.use_quaternions:
            result[:4] = angle_axis_to_quaternion(angle_axis)
        else:
            result[:3] = angle_axis
        # t = -R c
        result[self._translation_slice()] = -angle_axis_rotate_point(angle_axis, center)
        return result

    def write_to_file(self, filename) -> None:
        """Write the problem in BAL text layout, cameras always in angle-axis form."""
        with open(filename, "w") as out:
            out.write(
                f"{self._num_cameras} {self._num_cameras} {self._num_points} "
                f"{self.num_observations}\n"
            )
            for cam, pt, obs in zip(self.camera_index, self.point_index, self.observations):
                out.write("%d %d" % (cam, pt) + "".join(" %g" % v for v in obs) + "\n")
            for camera in self.cameras:
                if self.use_quaternions:
                    values = np.concatenate([quaternion_to_angle_axis(camera[:4]), camera[4:10]])
                else:
                    values = camera
                out.writelines("%.16g\n" % v for v in values)
            for point in self.points:
                out.writelines("%.16g\n" % v for v in point)

    def write_to_ply_file(self, filename) -> None:
        """Write camera centres (green) and points (white) as an ASCII PLY cloud."""
        header = [
            "ply",
            "format ascii 1.0",
            f"element vertex {self._num_cameras + self._num_points}",
            "property float x",
            "property float y",
            "property float z",
            "property uchar red",
            "property uchar green",
            "property uchar blue",
            "end_header",
        ]
        with open(filename, "w") as out:
            out.write("\n".join(header) + "\n")
            for camera in self.cameras:
                _, center = self._camera_to_angle_axis_and_center(camera)
                out.write(" ".join("%g" % v for v in center) + " 0 255 0\n")
            for point in self.points:
                out.write("".join("%g " % v for v in point) + " 255 255 255\n")

    def normalize(self) -> None:
        """Centre the points on their median and scale their median L1 spread to 100."""
        points = self.points
        center_of_mass = np.array([median(points[:, axis]) for axis in range(3)])
        deviations = [float(np.abs(p - center_of_mass).sum()) for p in points]
        median_absolute_deviation = median(deviations)
        scale = 100.0 / median_absolute_deviation

        points[:] = scale * (points - center_of_mass)

        cameras = self.cameras
        for i, camera in enumerate(cameras):
            angle_axis, center = self._camera_to_angle_axis_and_center(camera)
            center = scale * (center - center_of_mass)
            cameras[i] = self._angle_axis_and_center_to_camera(angle_axis, center, camera)

    def perturb(self, rotation_sigma, translation_sigma, point_sigma, rng=None) -> None:
        """Add normal noise to points, camera rotations and camera translations."""
        if point_sigma < 0.0 or rotation_sigma < 0.0 or translation_sigma < 0.0:
            raise ValueError("noise deviations must be non-negative")

        points = self.points
        if point_sigma > 0:
            for i in range(self._num_points):
                points[i] = perturb_point3(point_sigma, points[i], rng)

        cameras = self.cameras
        translation = self._translation_slice()
        for i in range(self._num_cameras):
            angle_axis, center = self._camera_to_angle_axis_and_center(cameras[i])
            if rotation_sigma > 0.0:
                angle_axis = perturb_point3(rotation_sigma, angle_axis, rng)
            cameras[i] = self._angle_axis_and_center_to_camera(angle_axis, center, cameras[i])
            if translation_sigma > 0.0:
                cameras[i, translation] = perturb_point3(
                    translation_sigma, cameras[i, translation], rng
                )


def _default_rng() -> random.Random:
    return random.Random()