# Obstacle grid tile constants centralized for modular imports
FREE = "."
HALO = "h"  # free cell hugging a room wall; walkable but discouraged
ROOM = "R"
DOORWAY = "D"
CORRIDOR = "T"

# Integer step costs used by the pathfinder. Rooms are never walkable.
FREE_COST = 1
HALO_COST = 2
CORRIDOR_COST = 2  # only applies in relaxed (repair) mode; corridors block otherwise
DOORWAY_COST = 1
# Surcharge for a cell whose corridor footprint would reach into a room.
NARROW_COST = 2

# Room distances are tracked up to this value; wider corridors are not supported.
CLEARANCE_CAP = 3

__all__ = [
    "FREE",
    "HALO",
    "ROOM",
    "DOORWAY",
    "CORRIDOR",
    "FREE_COST",
    "HALO_COST",
    "CORRIDOR_COST",
    "DOORWAY_COST",
    "NARROW_COST",
    "CLEARANCE_CAP",
]
