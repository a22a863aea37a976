import numpy as np
from typing import Sequence, Tuple

from ..config import TagLayout
from ..errors import DegenerateHomographyError, SingularIntrinsicsError
from ..tp_types import Header, TagDetection, TransformStamped
from ..transforms import HALF_TURN_X, matrix_to_quaternion

_EPS = 1e-12


def inverse_intrinsics(p: Sequence[float]) -> np.ndarray:
    """Inverse of the leading 3x3 block of a row-major 3x4 projection matrix."""
    P = np.asarray(p, dtype=np.float64).reshape(3, 4)
    K = P[:, :3]
    if not np.all(np.isfinite(K)):
        raise SingularIntrinsicsError("projection matrix has non-finite entries")
    try:
        Kinv = np.linalg.inv(K)
    except np.linalg.LinAlgError as e:
        raise SingularIntrinsicsError(f"projection matrix is singular: {e}") from e
    if not np.all(np.isfinite(Kinv)):
        raise SingularIntrinsicsError("projection matrix is ill-conditioned")
    return Kinv


def estimate_pose(
    H: np.ndarray,
    Pinv: np.ndarray,
    size: float,
    z_up: bool,
) -> Tuple[Tuple[float, float, float], Tuple[float, float, float, float]]:
    """
    Camera extrinsics of a planar tag from its homography.

    H maps the canonical tag square (corners at +/-1) into pixels, so
    H = K * [r1 r2 t] up to scale, hence T = K^-1 * H.

    Args:
        H: 3x3 homography
        Pinv: inverse camera intrinsics
        size: tag edge length
        z_up: let the tag z-axis point up out of the tag plane

    Returns:
        (translation xyz, quaternion xyzw)
    """
    T = np.asarray(Pinv, dtype=np.float64) @ np.asarray(H, dtype=np.float64).reshape(3, 3)
    if not np.all(np.isfinite(T)):
        raise DegenerateHomographyError("homography has non-finite entries")

    n0 = np.linalg.norm(T[:, 0])
    n1 = np.linalg.norm(T[:, 1])
    if n0 < _EPS or n1 < _EPS:
        raise DegenerateHomographyError(f"zero-length homography column (|c0|={n0:g}, |c1|={n1:g})")

    R = np.empty((3, 3))
    R[:, 0] = T[:, 0] / n0
    R[:, 1] = T[:, 1] / n1
    R[:, 2] = np.cross(R[:, 0], R[:, 1])
    if np.linalg.norm(R[:, 2]) < _EPS:
        raise DegenerateHomographyError("homography columns are parallel")

    if z_up:
        R = R @ HALF_TURN_X

    # canonical corners are (+/-1, +/-1), so one unit is half an edge
    t = T[:, 2] / ((n0 + n1) / 2.0) * (size / 2.0)
    if not np.all(np.isfinite(t)):
        raise DegenerateHomographyError("translation is not finite")

    q = matrix_to_quaternion(R)
    return (float(t[0]), float(t[1]), float(t[2])), q


class HomographyLocalize:
    """
    Strategy: pose of every detection from its homography.
    Frame names and edge sizes come from the tag layout.
    """
    def __init__(self, layout: TagLayout):
        self.layout = layout

    def estimate(
        self,
        header: Header,
        detections: list[TagDetection],
        Pinv: np.ndarray,
        z_up: bool,
    ) -> list[TransformStamped]:
        out = []
        for det in detections:
            translation, rotation = estimate_pose(
                det.homography, Pinv, self.layout.size(det.tag_id), z_up
            )
            out.append(TransformStamped(
                header,
                self.layout.frame_name(det.family, det.tag_id),
                translation,
                rotation,
            ))
        return out
