"""SuperObject graph traversal and the shared leaf decoders."""

from .sg_classes import SuperObject, SuperObjectGraph, SuperObjectType
from .sg_entities import ActorRole, EntityKind, ResolvedEntity
from .sg_geometry import GeometryDecoder, MeshSurface, ResolvedMesh
from .sg_materials import MaterialDecoder, normalize_texture_name
from .sg_math import Transform
from .sg_scene import SceneDecoder, build_animation_anchors

__all__ = [
    "ActorRole", "EntityKind", "GeometryDecoder", "MaterialDecoder",
    "MeshSurface", "ResolvedEntity", "ResolvedMesh", "SceneDecoder",
    "SuperObject", "SuperObjectGraph", "SuperObjectType", "Transform",
    "build_animation_anchors", "normalize_texture_name",
]
