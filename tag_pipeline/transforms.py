"""Rotation and rigid-transform helpers."""

import numpy as np
from scipy.spatial.transform import Rotation
from typing import Sequence, Tuple


# 180 degree rotation about the local x-axis
HALF_TURN_X = np.diag([1.0, -1.0, -1.0])


def matrix_to_quaternion(R: np.ndarray) -> Tuple[float, float, float, float]:
    """
    Convert a 3x3 rotation matrix to a unit quaternion.

    Args:
        R: Proper orthonormal rotation matrix

    Returns:
        (x, y, z, w)
    """
    q = Rotation.from_matrix(np.asarray(R, dtype=np.float64)).as_quat()
    return float(q[0]), float(q[1]), float(q[2]), float(q[3])


def quaternion_to_matrix(q: Sequence[float]) -> np.ndarray:
    """
    Convert an (x, y, z, w) quaternion to a 3x3 rotation matrix.
    """
    return Rotation.from_quat(np.asarray(q, dtype=np.float64)).as_matrix()