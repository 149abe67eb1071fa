"""
Analysis Module
===============

Density profiles and merger-tree histories.
"""

from .profiles import (
    DensityProfile,
    ProfileAccumulator,
    accumulate_snapshot,
    compute_profiles,
    insert_points,
    log_bin_edges,
    normalize_profile,
)

from .history import (
    Entry,
    Separator,
    filter_snapshot_range,
    frame_histories,
    from_pairs,
    halo_histories,
    split_histories,
    to_pairs,
)

__all__ = [
    # Profiles
    "DensityProfile",
    "ProfileAccumulator",
    "accumulate_snapshot",
    "compute_profiles",
    "insert_points",
    "log_bin_edges",
    "normalize_profile",
    # Histories
    "Entry",
    "Separator",
    "filter_snapshot_range",
    "frame_histories",
    "from_pairs",
    "halo_histories",
    "split_histories",
    "to_pairs",
]
