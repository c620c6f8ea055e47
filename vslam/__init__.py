"""Visual odometry and bundle adjustment building blocks: rotations and SE(3),
ORB descriptors and matching, PnP, ICP, triangulation, optical flow, the
direct method, and BAL bundle adjustment."""

__version__ = "0.1.0"