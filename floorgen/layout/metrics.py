from typing import Dict


def init_metrics() -> Dict[str, int | float | bool]:
    return {
        'rooms_planned': 0,
        'rooms_generated': 0,
        'partition_depth': 0,
        'backbone_corridors': 0,
        'branch_corridors': 0,
        'redundant_corridors': 0,
        'repair_corridors': 0,
        'repairs_performed': 0,
        'junction_cells': 0,
        'paths_not_found': 0,
        'path_searches': 0,
        'nodes_explored': 0,
        'path_cache_hits': 0,
        'optimizer_iterations': 0,
        'optimizer_converged': False,
        'rooms_moved': 0,
        'snaps_reverted': 0,
        'clearance_violations': 0,
        'runtime_ms': 0.0,
    }
