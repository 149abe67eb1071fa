"""
Utilities Module
================

Logging, I/O and MPI helpers.
"""

from .io_helpers import (
    save_hdf5,
    load_hdf5,
    save_yaml,
    load_yaml,
)

from .logging_setup import setup_logging

from .parallel import (
    get_mpi_comm,
    get_rank,
    get_size,
    is_root,
    distribute_items,
    reduce_sum,
    barrier,
    broadcast,
)

__all__ = [
    # I/O
    "save_hdf5",
    "load_hdf5",
    "save_yaml",
    "load_yaml",
    # Logging
    "setup_logging",
    # MPI
    "get_mpi_comm",
    "get_rank",
    "get_size",
    "is_root",
    "distribute_items",
    "reduce_sum",
    "barrier",
    "broadcast",
]
