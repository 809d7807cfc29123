"""SE(3) transformation utilities for checkerboard pose handling."""

import numpy as np
import cv2


def rvec_tvec_to_matrix(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """
    Convert rotation vector and translation vector to 4x4 transformation matrix.
    
    Args:
        rvec: Rotation vector (3,) or (3,1)
        tvec: Translation vector (3,) or (3,1)
    
    Returns:
        4x4 homogeneous transformation matrix
    """
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3)
    tvec = np.asarray(tvec, dtype=np.float64).reshape(3)
    
    R, _ = cv2.Rodrigues(rvec)
    
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = tvec
    
    return T


def invert_transform(T: np.ndarray) -> np.ndarray:
    """
    Invert a 4x4 homogeneous transformation matrix.
    
    For SE(3): T^-1 = [R^T, -R^T * t; 0, 1]
    
    Args:
        T: 4x4 transformation matrix
    
    Returns:
        4x4 inverted transformation matrix
    """
    T_inv = np.eye(4)
    R = T[:3, :3]
    t = T[:3, 3]
    
    R_T = R.T
    T_inv[:3, :3] = R_T
    T_inv[:3, 3] = -R_T @ t
    
    return T_inv


def rvec_to_quaternion(rvec: np.ndarray) -> np.ndarray:
    """
    Convert a rotation vector to a unit quaternion.
    
    The magnitude of the rotation vector is the rotation angle in radians,
    its direction the rotation axis. A zero vector maps to the identity.
    
    Args:
        rvec: Rotation vector (3,) or (3,1)
    
    Returns:
        Quaternion (x, y, z, w) of shape (4,)
    """
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3)
    angle = float(np.linalg.norm(rvec))
    if angle < 1e-12:
        return np.array([0.0, 0.0, 0.0, 1.0])
    axis = rvec / angle
    half = 0.5 * angle
    q = np.empty(4)
    q[:3] = axis * np.sin(half)
    q[3] = np.cos(half)
    return q / np.linalg.norm(q)


def quaternion_to_rvec(quat: np.ndarray) -> np.ndarray:
    """
    Convert a quaternion (x, y, z, w) to a rotation vector.
    
    The quaternion is normalized first; q and -q give the same rotation.
    
    Args:
        quat: Quaternion (4,)
    
    Returns:
        Rotation vector of shape (3,) with angle in [0, pi]
    """
    q = np.asarray(quat, dtype=np.float64).reshape(4)
    norm = np.linalg.norm(q)
    if norm < 1e-12:
        raise ValueError("quaternion has zero norm")
    q = q / norm
    if q[3] < 0:
        q = -q
    sin_half = float(np.linalg.norm(q[:3]))
    if sin_half < 1e-12:
        return np.zeros(3)
    angle = 2.0 * np.arctan2(sin_half, q[3])
    return q[:3] / sin_half * angle
