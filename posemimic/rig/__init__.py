"""Character rig hierarchy, loaders and joint registry"""

from .skeleton import NodeKind, RigNode, Rig
from .registry import BoneBinding, RigRegistry, build_registry
from .loader import load_gltf, load_rig_yaml, build_mixamo_rig, load_rig

__all__ = [
    "NodeKind", "RigNode", "Rig",
    "BoneBinding", "RigRegistry", "build_registry",
    "load_gltf", "load_rig_yaml", "build_mixamo_rig", "load_rig",
]
