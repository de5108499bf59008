"""Rig loaders - glTF/GLB characters, YAML rig descriptions, built-in Mixamo rig"""

import json
import struct
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import yaml

from posemimic.core import get_logger, RigLoadError
from posemimic.core.quaternion import (
    from_xyzw, normalize, quat_conjugate, quat_from_matrix,
    quat_from_two_vectors, quat_identity, quat_multiply, quat_rotate_vector,
)
from .skeleton import NodeKind, Rig, RigNode


logger = get_logger("rig.loader")

PathLike = Union[str, Path]

# ---------------------------------------------------------------------------
# GLB constants
# ---------------------------------------------------------------------------
GLB_MAGIC = 0x46546C67
GLB_VERSION = 2
CHUNK_JSON = 0x4E4F534A


def _read_gltf_json(path: Path) -> dict:
    """Return the glTF JSON document from a .glb container or a .gltf file."""
    raw = path.read_bytes()

    if path.suffix.lower() == ".gltf":
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RigLoadError(f"Invalid glTF JSON in {path}: {e}") from e

    if len(raw) < 20:
        raise RigLoadError(f"File too short to be a GLB container: {path}")

    magic, version, _total_len = struct.unpack_from("<III", raw, 0)
    if magic != GLB_MAGIC:
        raise RigLoadError(f"Not a GLB file: {path}")
    if version != GLB_VERSION:
        raise RigLoadError(f"Unsupported GLB version {version}: {path}")

    json_len, json_type = struct.unpack_from("<II", raw, 12)
    if json_type != CHUNK_JSON:
        raise RigLoadError(f"First GLB chunk is not JSON: {path}")

    try:
        return json.loads(raw[20:20 + json_len].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise RigLoadError(f"Invalid JSON chunk in {path}: {e}") from e


def _node_rotation_translation(node: dict) -> Tuple[np.ndarray, np.ndarray]:
    """Extract ([w, x, y, z], translation) from a glTF node."""
    if "matrix" in node:
        mat = np.array(node["matrix"], dtype=np.float64).reshape(4, 4).T  # col-major -> row-major
        rot = mat[:3, :3].copy()
        for col in range(3):
            scale = np.linalg.norm(rot[:, col])
            if scale > 0:
                rot[:, col] /= scale
        return quat_from_matrix(rot), mat[:3, 3].copy()

    rotation = from_xyzw(node.get("rotation", [0.0, 0.0, 0.0, 1.0]))
    translation = np.array(node.get("translation", [0.0, 0.0, 0.0]), dtype=np.float64)
    return rotation, translation


def load_gltf(path: PathLike) -> Rig:
    """
    Load the node hierarchy of a glTF 2.0 character (.glb or .gltf).

    Nodes referenced by any skin become bones, nodes carrying a mesh become
    mesh nodes, everything else is a plain transform. The default scene's
    root nodes hang under a non-spatial scene node.
    """
    path = Path(path)
    gltf = _read_gltf_json(path)

    nodes_json = gltf.get("nodes", [])
    joint_indices = set()
    for skin in gltf.get("skins", []):
        joint_indices.update(skin.get("joints", []))

    nodes: List[RigNode] = []
    for index, node_json in enumerate(nodes_json):
        if index in joint_indices:
            kind = NodeKind.BONE
        elif "mesh" in node_json:
            kind = NodeKind.MESH
        else:
            kind = NodeKind.TRANSFORM
        rotation, translation = _node_rotation_translation(node_json)
        nodes.append(RigNode(
            name=node_json.get("name", f"node_{index}"),
            kind=kind,
            local_rotation=rotation,
            translation=translation,
        ))

    has_parent = set()
    for index, node_json in enumerate(nodes_json):
        for child_index in node_json.get("children", []):
            if child_index >= len(nodes):
                raise RigLoadError(f"Node {index} references missing child {child_index} in {path}")
            nodes[index].add_child(nodes[child_index])
            has_parent.add(child_index)

    scenes = gltf.get("scenes", [])
    if scenes:
        scene_json = scenes[gltf.get("scene", 0)]
        root_indices = scene_json.get("nodes", [])
        scene_name = scene_json.get("name", "Scene")
    else:
        root_indices = [i for i in range(len(nodes)) if i not in has_parent]
        scene_name = "Scene"

    root = RigNode(name=scene_name, kind=NodeKind.SCENE)
    for index in root_indices:
        root.add_child(nodes[index])

    rig = Rig(root, name=path.stem)
    logger.info(f"Loaded {path.name}: {len(nodes)} nodes, {len(rig.bones())} bones")
    return rig


def load_rig_yaml(path: PathLike) -> Rig:
    """
    Load a rig description from YAML.

    Format::

        name: my_character
        bones:
          - name: Hips
            rotation: [1, 0, 0, 0]     # w, x, y, z
            translation: [0, 100, 0]
          - name: Spine
            parent: Hips
            kind: bone                 # optional: bone | transform | mesh

    Parents must be listed before their children.
    """
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise RigLoadError(f"Invalid YAML rig description {path}: {e}") from e

    if not isinstance(data, dict):
        raise RigLoadError(f"Rig description {path} must be a mapping, got {type(data).__name__}")
    entries = data.get("bones") or []
    if not isinstance(entries, list):
        raise RigLoadError(f"'bones' in {path} must be a list")

    root = RigNode(name=str(data.get("scene", "Scene")), kind=NodeKind.SCENE)
    by_name: Dict[str, RigNode] = {}

    for entry in entries:
        if not isinstance(entry, dict):
            raise RigLoadError(f"Rig entry must be a mapping in {path}: {entry!r}")
        name = entry.get("name")
        if not name:
            raise RigLoadError(f"Rig entry without a name in {path}: {entry}")
        try:
            kind = NodeKind(entry.get("kind", "bone"))
        except ValueError as e:
            raise RigLoadError(f"Unknown node kind for '{name}' in {path}") from e

        try:
            rotation = np.array(entry.get("rotation", [1.0, 0.0, 0.0, 0.0]), dtype=np.float64)
            translation = np.array(entry.get("translation", [0.0, 0.0, 0.0]), dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise RigLoadError(f"Bad transform for '{name}' in {path}: {e}") from e
        if rotation.shape != (4,) or translation.shape != (3,):
            raise RigLoadError(
                f"Bone '{name}' in {path} needs a 4-value rotation and a 3-value translation"
            )

        node = RigNode(name=str(name), kind=kind, local_rotation=rotation, translation=translation)

        parent_name = entry.get("parent")
        if parent_name is None:
            root.add_child(node)
        elif parent_name in by_name:
            by_name[parent_name].add_child(node)
        else:
            raise RigLoadError(f"Bone '{name}' lists unknown parent '{parent_name}' in {path}")
        by_name[name] = node

    rig = Rig(root, name=data.get("name", path.stem))
    logger.info(f"Loaded rig description {path.name}: {len(rig.bones())} bones")
    return rig


# ---------------------------------------------------------------------------
# Built-in Mixamo rig
# ---------------------------------------------------------------------------

# (bone, parent, T-pose direction, length in cm). Directions are in character
# space: Y up, +X the character's left, +Z forward.
MIXAMO_T_POSE: List[Tuple[str, Optional[str], Tuple[float, float, float], float]] = [
    ("mixamorig:Hips", None, (0, 1, 0), 10.0),
    ("mixamorig:Spine", "mixamorig:Hips", (0, 1, 0), 10.0),
    ("mixamorig:Spine1", "mixamorig:Spine", (0, 1, 0), 12.0),
    ("mixamorig:Spine2", "mixamorig:Spine1", (0, 1, 0), 14.0),
    ("mixamorig:Neck", "mixamorig:Spine2", (0, 1, 0), 10.0),
    ("mixamorig:Head", "mixamorig:Neck", (0, 1, 0), 20.0),
    ("mixamorig:LeftShoulder", "mixamorig:Spine2", (1, 0, 0), 12.0),
    ("mixamorig:LeftArm", "mixamorig:LeftShoulder", (1, 0, 0), 28.0),
    ("mixamorig:LeftForeArm", "mixamorig:LeftArm", (1, 0, 0), 26.0),
    ("mixamorig:LeftHand", "mixamorig:LeftForeArm", (1, 0, 0), 8.0),
    ("mixamorig:RightShoulder", "mixamorig:Spine2", (-1, 0, 0), 12.0),
    ("mixamorig:RightArm", "mixamorig:RightShoulder", (-1, 0, 0), 28.0),
    ("mixamorig:RightForeArm", "mixamorig:RightArm", (-1, 0, 0), 26.0),
    ("mixamorig:RightHand", "mixamorig:RightForeArm", (-1, 0, 0), 8.0),
    ("mixamorig:LeftUpLeg", "mixamorig:Hips", (0, -1, 0), 42.0),
    ("mixamorig:LeftLeg", "mixamorig:LeftUpLeg", (0, -1, 0), 40.0),
    ("mixamorig:LeftFoot", "mixamorig:LeftLeg", (0, 0, 1), 15.0),
    ("mixamorig:LeftToeBase", "mixamorig:LeftFoot", (0, 0, 1), 5.0),
    ("mixamorig:RightUpLeg", "mixamorig:Hips", (0, -1, 0), 42.0),
    ("mixamorig:RightLeg", "mixamorig:RightUpLeg", (0, -1, 0), 40.0),
    ("mixamorig:RightFoot", "mixamorig:RightLeg", (0, 0, 1), 15.0),
    ("mixamorig:RightToeBase", "mixamorig:RightFoot", (0, 0, 1), 5.0),
]

# Hip joints sit to the side of the pelvis rather than along the hips bone
_MIXAMO_HIP_OFFSETS = {
    "mixamorig:LeftUpLeg": (9.0, -6.0, 0.0),
    "mixamorig:RightUpLeg": (-9.0, -6.0, 0.0),
}


def build_mixamo_rig(bone_axis: Tuple[float, float, float] = (0.0, 1.0, 0.0)) -> Rig:
    """
    Build a Mixamo-style T-pose rig in which every bone's local `bone_axis`
    points along the bone, the convention Mixamo exports follow for +Y.
    """
    axis = normalize(np.asarray(bone_axis, dtype=np.float64))

    root = RigNode(name="Scene", kind=NodeKind.SCENE)
    armature = root.add_child(RigNode(name="Armature", kind=NodeKind.TRANSFORM))
    armature.add_child(RigNode(name="Body", kind=NodeKind.MESH))

    nodes: Dict[str, RigNode] = {}
    world_rotations: Dict[str, np.ndarray] = {}
    heads: Dict[str, np.ndarray] = {}
    tips: Dict[str, np.ndarray] = {}

    for name, parent_name, direction, length in MIXAMO_T_POSE:
        direction = normalize(np.asarray(direction, dtype=np.float64))
        world_rotation = quat_from_two_vectors(axis, direction)

        if parent_name is None:
            parent_world = quat_identity()
            head = np.array([0.0, 100.0, 0.0])
            translation = head
        else:
            parent_world = world_rotations[parent_name]
            if name in _MIXAMO_HIP_OFFSETS:
                head = heads[parent_name] + np.asarray(_MIXAMO_HIP_OFFSETS[name], dtype=np.float64)
            else:
                head = tips[parent_name]
            translation = quat_rotate_vector(quat_conjugate(parent_world), head - heads[parent_name])

        local_rotation = quat_multiply(quat_conjugate(parent_world), world_rotation)
        node = RigNode(
            name=name,
            kind=NodeKind.BONE,
            local_rotation=local_rotation,
            translation=translation,
        )
        (nodes[parent_name] if parent_name else armature).add_child(node)

        nodes[name] = node
        world_rotations[name] = world_rotation
        heads[name] = head
        tips[name] = head + direction * length

    return Rig(root, name="mixamo")


def load_rig(path: Optional[PathLike]) -> Rig:
    """Load a rig by file suffix; no path means the built-in Mixamo rig."""
    if path is None:
        logger.info("No rig file configured, using built-in Mixamo rig")
        return build_mixamo_rig()

    path = Path(path)
    if not path.exists():
        raise RigLoadError(f"Rig file not found: {path}")

    suffix = path.suffix.lower()
    if suffix in (".glb", ".gltf"):
        return load_gltf(path)
    if suffix in (".yaml", ".yml"):
        return load_rig_yaml(path)

    raise RigLoadError(f"Unsupported rig format '{suffix}' (expected .glb, .gltf, .yaml)")
