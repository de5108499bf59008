"""Rig registry - binds semantic joint keys to bones of a loaded rig.

Built once per loaded character. Rest rotations come from each bone's bind
pose as loaded, so they are the same no matter what the rig currently shows,
and are the anchor every per-frame rotation is layered onto.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional

import numpy as np

from posemimic.core import get_logger, JointKey, EmptyRigError
from .skeleton import Rig


logger = get_logger("rig.registry")


@dataclass(frozen=True)
class BoneBinding:
    """A configured joint key resolved to a bone and its bind-pose rotation."""
    joint_key: JointKey
    bone_name: str
    rest_rotation: np.ndarray  # [w, x, y, z], read-only


class RigRegistry:
    """Read-only lookup from joint keys and bone names to bindings."""

    def __init__(self, bindings: List[BoneBinding], missing: Dict[JointKey, str]):
        self._by_bone: Dict[str, BoneBinding] = {b.bone_name: b for b in bindings}
        self._by_joint: Dict[JointKey, BoneBinding] = {b.joint_key: b for b in bindings}
        self._missing = dict(missing)

    @property
    def bindings(self) -> Dict[str, BoneBinding]:
        """Bone name -> binding."""
        return dict(self._by_bone)

    @property
    def missing(self) -> Dict[JointKey, str]:
        """Joint keys whose configured bone was not found in the rig."""
        return dict(self._missing)

    def binding(self, joint_key: JointKey) -> Optional[BoneBinding]:
        return self._by_joint.get(joint_key)

    def bone_name(self, joint_key: JointKey) -> Optional[str]:
        binding = self._by_joint.get(joint_key)
        return binding.bone_name if binding else None

    def is_bound(self, joint_key: JointKey) -> bool:
        return joint_key in self._by_joint

    def rest_rotations(self) -> Dict[str, np.ndarray]:
        return {name: b.rest_rotation.copy() for name, b in self._by_bone.items()}

    def __iter__(self) -> Iterator[BoneBinding]:
        return iter(self._by_bone.values())

    def __len__(self) -> int:
        return len(self._by_bone)

    def __contains__(self, bone_name: str) -> bool:
        return bone_name in self._by_bone

    def __repr__(self) -> str:
        return f"RigRegistry(bound={len(self._by_bone)}, missing={len(self._missing)})"


def build_registry(rig: Rig, mapping: Mapping[JointKey, str]) -> RigRegistry:
    """
    Resolve a joint -> bone mapping against a loaded rig.

    Every configured bone name that the rig lacks is logged once and left
    unbound for the lifetime of this registry. A partial registry is still a
    valid result.

    Raises:
        EmptyRigError: the rig has no bones at all
    """
    if not rig.bones():
        raise EmptyRigError(f"Rig '{rig.name}' contains no bones, cannot retarget")

    logger.debug(f"Discovered bones: {rig.bone_names}")

    bindings: List[BoneBinding] = []
    missing: Dict[JointKey, str] = {}
    warned = set()

    for joint_key, bone_name in mapping.items():
        node = rig.find(bone_name)
        if node is None or not node.is_bone:
            missing[joint_key] = bone_name
            if bone_name not in warned:
                logger.warning(
                    f"Mapping warning: bone '{bone_name}' not found in rig "
                    f"(joint '{joint_key.value}')"
                )
                warned.add(bone_name)
            continue

        # Bind pose, never the pose the rig currently shows
        bindings.append(
            BoneBinding(joint_key=joint_key, bone_name=bone_name, rest_rotation=node.rest_rotation)
        )

    registry = RigRegistry(bindings, missing)
    if missing:
        logger.info(f"Registry built with {len(bindings)} bound bones, {len(missing)} unresolved")
    else:
        logger.info(f"Registry built, all {len(bindings)} mapped bones found")
    return registry
