"""Bone orienter - aim a bone's rest axis along a target direction."""

from typing import Optional

import numpy as np

from posemimic.core.quaternion import (
    normalize, quat_conjugate, quat_from_two_vectors,
    quat_multiply, quat_normalize, quat_rotate_vector,
)


def orient(
    target_direction: np.ndarray,
    rest_rotation: np.ndarray,
    parent_world_rotation: Optional[np.ndarray],
    rest_axis: np.ndarray,
) -> np.ndarray:
    """
    Compute a bone's new local rotation.

    The target direction is brought into the parent's space, the shortest arc
    from `rest_axis` onto it is found, and that arc is layered on top of the
    rest rotation (rest * arc) so the bind-pose twist survives.

    Args:
        target_direction: Unit direction in pose space
        rest_rotation: Bone's bind-pose local rotation [w, x, y, z]
        parent_world_rotation: Parent's current world rotation, None for identity
        rest_axis: Direction the bone points along in its own local space

    Returns:
        New local rotation [w, x, y, z]
    """
    direction = np.asarray(target_direction, dtype=np.float64)
    if parent_world_rotation is not None:
        direction = quat_rotate_vector(quat_conjugate(parent_world_rotation), direction)

    arc = quat_from_two_vectors(
        np.asarray(rest_axis, dtype=np.float64),
        normalize(direction),
    )
    return quat_normalize(quat_multiply(rest_rotation, arc))
