"""Character rig hierarchy.

A rig is a tree of typed nodes. The node kind is decided once, when the rig
is loaded, so the rest of the pipeline asks `node.is_bone` instead of checking
loader-specific attributes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional

import numpy as np

from posemimic.core import get_logger
from posemimic.core.quaternion import quat_identity, quat_multiply, quat_normalize


logger = get_logger("rig.skeleton")


class NodeKind(Enum):
    BONE = "bone"
    TRANSFORM = "transform"  # Armature objects, empty groups
    MESH = "mesh"
    SCENE = "scene"  # Container without a transform of its own


@dataclass(eq=False)
class RigNode:
    """Single node of a character hierarchy."""
    name: str
    kind: NodeKind
    local_rotation: np.ndarray = field(default_factory=quat_identity)  # [w, x, y, z]
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    parent: Optional["RigNode"] = field(default=None, repr=False)
    children: List["RigNode"] = field(default_factory=list, repr=False)
    rest_rotation: np.ndarray = field(init=False, repr=False)  # Bind pose, read-only

    def __post_init__(self):
        self.local_rotation = quat_normalize(np.asarray(self.local_rotation, dtype=np.float64))
        self.rest_rotation = self.local_rotation.copy()
        self.rest_rotation.setflags(write=False)
        self.translation = np.asarray(self.translation, dtype=np.float64)

    @property
    def is_bone(self) -> bool:
        return self.kind is NodeKind.BONE

    @property
    def is_spatial(self) -> bool:
        return self.kind is not NodeKind.SCENE

    def add_child(self, child: "RigNode") -> "RigNode":
        child.parent = self
        self.children.append(child)
        return child


class Rig:
    """
    A loaded character hierarchy with name lookup and world rotation queries.

    World rotations are computed on demand from local rotations. Callers may
    pass an `overrides` mapping (node name -> local rotation) to evaluate the
    hierarchy against a pose that has not been written to the nodes yet.
    """

    def __init__(self, root: RigNode, name: str = "character"):
        self.root = root
        self.name = name
        self._nodes: Dict[str, RigNode] = {}

        for node in self.traverse():
            if node.name in self._nodes:
                logger.debug(f"Duplicate node name '{node.name}' in rig '{name}', keeping first")
                continue
            self._nodes[node.name] = node

    def traverse(self) -> Iterator[RigNode]:
        """Depth-first walk, every parent before its children."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def bones(self) -> List[RigNode]:
        return [node for node in self.traverse() if node.is_bone]

    @property
    def bone_names(self) -> List[str]:
        return [node.name for node in self.bones()]

    def find(self, name: str) -> Optional[RigNode]:
        return self._nodes.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def _require(self, name: str) -> RigNode:
        node = self._nodes.get(name)
        if node is None:
            raise KeyError(f"No node named '{name}' in rig '{self.name}'")
        return node

    def depth(self, name: str) -> int:
        """Number of ancestors above the named node."""
        node = self._require(name)
        depth = 0
        while node.parent is not None:
            node = node.parent
            depth += 1
        return depth

    def _local(self, node: RigNode, overrides: Optional[Mapping[str, np.ndarray]]) -> np.ndarray:
        if overrides is not None and node.name in overrides:
            return overrides[node.name]
        return node.local_rotation

    def _world(self, node: RigNode, overrides: Optional[Mapping[str, np.ndarray]]) -> np.ndarray:
        rotation = quat_identity()
        current: Optional[RigNode] = node
        while current is not None:
            if current.is_spatial:
                rotation = quat_multiply(self._local(current, overrides), rotation)
            current = current.parent
        return quat_normalize(rotation)

    def world_rotation(
        self,
        name: str,
        overrides: Optional[Mapping[str, np.ndarray]] = None,
    ) -> np.ndarray:
        """Accumulated rotation of the named node in rig-root space."""
        return self._world(self._require(name), overrides)

    def parent_world_rotation(
        self,
        name: str,
        overrides: Optional[Mapping[str, np.ndarray]] = None,
    ) -> np.ndarray:
        """World rotation of the node's parent, identity for roots and non-spatial parents."""
        parent = self._require(name).parent
        if parent is None or not parent.is_spatial:
            return quat_identity()
        return self._world(parent, overrides)

    def set_local_rotation(self, name: str, rotation: np.ndarray) -> None:
        self._require(name).local_rotation = quat_normalize(np.asarray(rotation, dtype=np.float64))

    def local_rotations(self) -> Dict[str, np.ndarray]:
        """Snapshot of every bone's local rotation."""
        return {node.name: node.local_rotation.copy() for node in self.bones()}

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"Rig({self.name!r}, nodes={len(self._nodes)}, bones={len(self.bones())})"
