# vslam

Building blocks for visual odometry and bundle adjustment, written on NumPy
and SciPy. Grey-scale images are 2-D arrays (normally `uint8`). Poses are
`vslam.lie.SE3` objects, and points are NumPy arrays.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Modules

- `vslam.rotation`: `dot_product` and `cross_product` for 3-vectors. It
  converts between angle-axis vectors and quaternions `(w, x, y, z)` with
  `angle_axis_to_quaternion` and `quaternion_to_angle_axis`.
  `angle_axis_rotate_point` rotates a point with Rodrigues' formula.
- `vslam.sampling`: `rand_double` and `rand_normal`, the second using the polar
  method. Both take an optional `random.Random`; when none is given they use the
  module-level generator.
- `vslam.lie`: the `SE3` rigid transform, with `act`, `compose`, `matrix` and
  `inverse`. It also has `hat`, `so3_exp`, `so3_log` and `se3_exp`. In the twist
  passed to `se3_exp` the translation comes first and the rotation last.
- `vslam.reprojection`: `cam_projection_with_distortion` projects a point with
  a 9-parameter camera: angle-axis rotation, translation, focal length, k1 and
  k2. `SnavelyReprojectionError` is the residual against an observed pixel.
- `vslam.bal`: `BALProblem` loads a BAL text file. Malformed input raises
  `BALFormatError`. Cameras can be stored as quaternions if you ask for it. The
  class provides `normalize`, `perturb`, `write_to_file` (BAL layout) and
  `write_to_ply_file`. The PLY file holds camera centres in green and points
  in white. The module also has the helpers `median` and `perturb_point3`.
- `vslam.bundle`: `solve_ba` adjusts a `BALProblem` in place. It uses SciPy's
  sparse trust-region least squares with a Huber loss and returns SciPy's
  result object. It needs angle-axis cameras. `PoseAndIntrinsics` holds one
  camera as a rotation matrix, translation, focal length and distortion. It
  converts to and from 9-parameter blocks and can project points.
- `vslam.orb`: `KeyPoint` and `DMatch`. `compute_orb` computes 256-bit
  rotated BRIEF descriptors as 8 words of 32 bits. Keypoints that lie within
  16 pixels of the border get `None`. The module also has `hamming_distance`
  and `bf_match`, a brute-force matcher that keeps distances below 40.
  `filter_matches` keeps the matches whose distance is at most
  `max(2 * min, 30)`.
- `vslam.pnp`: `pixel2cam` and `bundle_adjustment_gauss_newton` estimate a
  pose from 3D–2D pairs. `ProjectionEdge` with `optimize_pose` does a
  Gauss-Newton optimisation over edges.
- `vslam.icp`: `pose_estimation_3d3d` gives the closed-form SVD alignment
  `(R, t)` with `pts1 ≈ R @ pts2 + t`. `bundle_adjustment` refines the same
  alignment by Levenberg–Marquardt over `PointEdge` residuals, starting from
  the identity.
- `vslam.triangulation`: `pixel2cam`, `skew` and `epipolar_constraint`.
  `triangulate` is linear triangulation from views `[I|0]` and `[R|t]`.
  `depth_color` gives a plotting colour for a depth.
- `vslam.imaging`: `get_pixel_value` does bilinear sampling with clamping to
  the border. The module also has `resize` and `build_pyramid`.
- `vslam.optical_flow`: Lucas–Kanade tracking with forward or inverse
  formulation. `optical_flow_single_level` works on one level and can start
  from an initial guess. `optical_flow_multi_level` works coarse-to-fine over
  four levels. Both return the tracked keypoints and a success flag for each.
- `vslam.direct`: `Intrinsics`, `JacobianAccumulator` and `interpolate_pixel`.
  `direct_pose_estimation_single_layer` and
  `direct_pose_estimation_multi_layer` estimate a pose photometrically from
  reference pixels with known depths.

Progress and diagnostics are logged at debug level through `logging`.

## Example

```python
import numpy as np
from vslam.icp import pose_estimation_3d3d

pts2 = np.random.default_rng(0).normal(size=(20, 3))
pts1 = pts2 + np.array([0.1, -0.2, 0.3])
R, t = pose_estimation_3d3d(pts1, pts2)
```

## Command line

```
vslam-ba problem.txt
```

The command does the following:

1. Loads the BAL problem.
2. Normalises it.
3. Perturbs it with rotation, translation and point noise of 0.1, 0.5 and 0.5.
4. Writes `initial.ply` to the current directory.
5. Runs `solve_ba`.
6. Prints the final cost.
7. Writes `final.ply`.

If it is not given exactly one argument, it prints a usage line and exits
with status 1.

## What it does not do

The package does not read or write image files. It does not display or draw
anything. It has no keypoint detector, so keypoints must come from elsewhere.
It does not estimate fundamental, essential or homography matrices, and it
does not solve PnP in closed form. Relative poses passed to `triangulate` and
`epipolar_constraint` must be supplied by the caller.