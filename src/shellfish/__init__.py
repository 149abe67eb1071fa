"""
Shellfish
=========

Density profiles and merger-tree histories for halos in cosmological
N-body simulations, feeding splashback-shell measurements.

This package provides tools for:
- Grouping halo catalogs by snapshot
- Culling snapshot blocks by halo bounding spheres
- Streaming log-radial density profiles over out-of-core snapshots
- Extracting main-progenitor histories from consistent-trees files
"""

__version__ = "1.0.0"

from .config import (
    GlobalConfig,
    ProfConfig,
)

from .exceptions import (
    ShellfishError,
    MalformedInputError,
    ConfigValidationError,
    SnapshotHeaderError,
    BlockReadError,
    TreeDiscoveryError,
)

from .data.catalog import (
    HaloCatalog,
    HaloRecord,
    group_by_snapshot,
)

from .data.snapshots import (
    ParticleReader,
    SnapshotBlockHeader,
    get_reader,
)

from .data.header_cache import HeaderCache

from .data.trees import (
    TreeForest,
    find_tree_files,
)

from .geometry import (
    BoundingSphere,
    bounding_spheres,
    bin_sphere_intersections,
)

from .analysis.profiles import (
    DensityProfile,
    ProfileAccumulator,
    compute_profiles,
    normalize_profile,
)

from .analysis.history import (
    Entry,
    Separator,
    halo_histories,
    frame_histories,
    filter_snapshot_range,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "GlobalConfig",
    "ProfConfig",
    # Errors
    "ShellfishError",
    "MalformedInputError",
    "ConfigValidationError",
    "SnapshotHeaderError",
    "BlockReadError",
    "TreeDiscoveryError",
    # Catalogs
    "HaloCatalog",
    "HaloRecord",
    "group_by_snapshot",
    # Snapshots
    "ParticleReader",
    "SnapshotBlockHeader",
    "get_reader",
    "HeaderCache",
    # Trees
    "TreeForest",
    "find_tree_files",
    # Geometry
    "BoundingSphere",
    "bounding_spheres",
    "bin_sphere_intersections",
    # Profiles
    "DensityProfile",
    "ProfileAccumulator",
    "compute_profiles",
    "normalize_profile",
    # Histories
    "Entry",
    "Separator",
    "halo_histories",
    "frame_histories",
    "filter_snapshot_range",
]
