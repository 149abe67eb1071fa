"""
Data Module
===========

Text catalogs, snapshot blocks, header memoization and merger trees.
"""

from .catalog import (
    HaloCatalog,
    HaloRecord,
    comment_string,
    format_cols,
    group_by_snapshot,
    parse_cols,
)

from .snapshots import (
    GadgetHDF5Reader,
    LGadget2Reader,
    ParticleReader,
    SnapshotBlockHeader,
    block_paths,
    get_reader,
)

from .header_cache import HeaderCache, check_memo_dir

from .trees import TreeForest, find_tree_files, parse_tree_file

__all__ = [
    # Catalogs
    "HaloCatalog",
    "HaloRecord",
    "comment_string",
    "format_cols",
    "group_by_snapshot",
    "parse_cols",
    # Snapshots
    "GadgetHDF5Reader",
    "LGadget2Reader",
    "ParticleReader",
    "SnapshotBlockHeader",
    "block_paths",
    "get_reader",
    "HeaderCache",
    "check_memo_dir",
    # Trees
    "TreeForest",
    "find_tree_files",
    "parse_tree_file",
]
