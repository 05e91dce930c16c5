"""Layout generation core.

Public surface re-exported for callers (HTTP routes, CLI, tests):

    from floorgen.layout import GenerationRequest, generate_layout, encode_json
"""
from .classifier import ClassificationSettings, RoomClassifier, classify_rooms
from .codec import decode, decode_binary, decode_document, decode_json, encode, encode_binary, encode_json
from .config import GenerationRequest, derive_seed
from .connectivity import ConnectivityBuilder, shortest_route
from .errors import (
    ConfigurationError,
    ConvergenceWarning,
    DecodeError,
    FloorgenError,
    GenerationCancelled,
    GenerationFailure,
)
from .geometry import Rect
from .grid import ObstacleGrid
from .model import SCHEMA_VERSION, Corridor, CorridorTag, Layout, Room, RoomType
from .optimizer import LayoutOptimizer
from .partition import PartitionBuilder, PartitionTree, build_partition
from .pathfinding import PathFinder
from .pipeline import GenerationJob, GenerationResult, generate_layout
from .validation import clearance_violations, is_connected, shared_cells, validate_layout

__all__ = [
    "ClassificationSettings",
    "ConfigurationError",
    "ConnectivityBuilder",
    "ConvergenceWarning",
    "Corridor",
    "CorridorTag",
    "DecodeError",
    "FloorgenError",
    "GenerationCancelled",
    "GenerationFailure",
    "GenerationJob",
    "GenerationRequest",
    "GenerationResult",
    "Layout",
    "LayoutOptimizer",
    "ObstacleGrid",
    "PartitionBuilder",
    "PartitionTree",
    "PathFinder",
    "Rect",
    "Room",
    "RoomClassifier",
    "RoomType",
    "SCHEMA_VERSION",
    "build_partition",
    "classify_rooms",
    "decode",
    "decode_binary",
    "decode_document",
    "decode_json",
    "derive_seed",
    "encode",
    "encode_binary",
    "encode_json",
    "generate_layout",
    "clearance_violations",
    "is_connected",
    "shared_cells",
    "shortest_route",
    "validate_layout",
]
