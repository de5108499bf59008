"""
Quaternion utilities.

All quaternions are numpy arrays in [w, x, y, z] order. glTF files store
rotations as [x, y, z, w]; use `from_xyzw` / `to_xyzw` at that boundary.
"""

from typing import Sequence

import numpy as np


EPSILON = 1e-8


def normalize(v: np.ndarray) -> np.ndarray:
    """Normalize a vector, return zero if length is too small."""
    n = np.linalg.norm(v)
    if n < EPSILON:
        return np.zeros_like(v, dtype=np.float64)
    return np.asarray(v, dtype=np.float64) / n


def quat_identity() -> np.ndarray:
    return np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)


def quat_normalize(q: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(q)
    if n < EPSILON:
        return quat_identity()
    return np.asarray(q, dtype=np.float64) / n


def quat_multiply(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Multiply two quaternions: q1 * q2 (q2 applied first)."""
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2
    return np.array([
        w1*w2 - x1*x2 - y1*y2 - z1*z2,
        w1*x2 + x1*w2 + y1*z2 - z1*y2,
        w1*y2 - x1*z2 + y1*w2 + z1*x2,
        w1*z2 + x1*y2 - y1*x2 + z1*w2
    ], dtype=np.float64)


def quat_conjugate(q: np.ndarray) -> np.ndarray:
    """Return conjugate (inverse for unit quaternion)."""
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=np.float64)


def quat_rotate_vector(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate vector v by quaternion q."""
    qv = np.array([0.0, v[0], v[1], v[2]], dtype=np.float64)
    rotated = quat_multiply(quat_multiply(q, qv), quat_conjugate(q))
    return rotated[1:4]


def quat_from_axis_angle(axis: np.ndarray, angle: float) -> np.ndarray:
    """Create quaternion from axis and angle (radians)."""
    axis = normalize(np.asarray(axis, dtype=np.float64))
    half = angle * 0.5
    s = np.sin(half)
    return np.array([np.cos(half), axis[0]*s, axis[1]*s, axis[2]*s], dtype=np.float64)


def quat_from_two_vectors(v_from: np.ndarray, v_to: np.ndarray) -> np.ndarray:
    """
    Shortest-arc quaternion that rotates v_from onto v_to.

    Opposite vectors have no unique shortest arc; the rotation is then a half
    turn about an axis perpendicular to v_from, built against +X unless v_from
    is nearly along X, in which case +Y is used.
    """
    v_from = normalize(v_from)
    v_to = normalize(v_to)

    dot = float(np.dot(v_from, v_to))

    if dot > 0.99999:
        return quat_identity()

    if dot < -0.99999:
        ortho = np.array([1.0, 0.0, 0.0])
        if abs(v_from[0]) > 0.9:
            ortho = np.array([0.0, 1.0, 0.0])
        axis = normalize(np.cross(v_from, ortho))
        return np.array([0.0, axis[0], axis[1], axis[2]], dtype=np.float64)

    axis = np.cross(v_from, v_to)
    s = np.sqrt((1.0 + dot) * 2.0)
    invs = 1.0 / s

    return quat_normalize(np.array([
        s * 0.5,
        axis[0] * invs,
        axis[1] * invs,
        axis[2] * invs
    ], dtype=np.float64))


def quat_slerp(q1: np.ndarray, q2: np.ndarray, t: float) -> np.ndarray:
    """Spherical linear interpolation between quaternions."""
    q1 = quat_normalize(q1)
    q2 = quat_normalize(q2)
    dot = float(np.dot(q1, q2))

    # Shortest path
    if dot < 0:
        q2 = -q2
        dot = -dot

    if dot > 0.9995:
        return quat_normalize(q1 + t * (q2 - q1))

    theta = np.arccos(dot) * t

    q2_perp = normalize(q2 - q1 * dot)

    return quat_normalize(q1 * np.cos(theta) + q2_perp * np.sin(theta))


def quat_angle_between(q1: np.ndarray, q2: np.ndarray) -> float:
    """Rotation angle (radians) separating two orientations."""
    dot = abs(float(np.dot(quat_normalize(q1), quat_normalize(q2))))
    return 2.0 * float(np.arccos(min(1.0, dot)))


def from_xyzw(q: Sequence[float]) -> np.ndarray:
    x, y, z, w = q
    return np.array([w, x, y, z], dtype=np.float64)


def to_xyzw(q: np.ndarray) -> list:
    return [float(q[1]), float(q[2]), float(q[3]), float(q[0])]


def quat_from_matrix(m: np.ndarray) -> np.ndarray:
    """Convert a 3x3 rotation matrix to quaternion [w, x, y, z]."""
    trace = m[0, 0] + m[1, 1] + m[2, 2]

    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        w = 0.25 / s
        x = (m[2, 1] - m[1, 2]) * s
        y = (m[0, 2] - m[2, 0]) * s
        z = (m[1, 0] - m[0, 1]) * s
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2])
        w = (m[2, 1] - m[1, 2]) / s
        x = 0.25 * s
        y = (m[0, 1] + m[1, 0]) / s
        z = (m[0, 2] + m[2, 0]) / s
    elif m[1, 1] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2])
        w = (m[0, 2] - m[2, 0]) / s
        x = (m[0, 1] + m[1, 0]) / s
        y = 0.25 * s
        z = (m[1, 2] + m[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1])
        w = (m[1, 0] - m[0, 1]) / s
        x = (m[0, 2] + m[2, 0]) / s
        y = (m[1, 2] + m[2, 1]) / s
        z = 0.25 * s

    return quat_normalize(np.array([w, x, y, z], dtype=np.float64))
