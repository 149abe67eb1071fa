"""
Parallel Utilities Module
=========================

Optional MPI helpers. Every function degrades to single-process
behaviour when mpi4py is not installed or no communicator is given.
"""

from __future__ import annotations

import logging
from typing import List, Optional, TypeVar, Union

import numpy as np

logger = logging.getLogger(__name__)

T = TypeVar('T')


def get_mpi_comm():
    """
    Get MPI communicator.

    Returns
    -------
    comm : MPI.Comm or None
        MPI communicator, or None if MPI not available.
    """
    try:
        from mpi4py import MPI
        return MPI.COMM_WORLD
    except ImportError:
        return None


def get_rank(comm=None) -> int:
    """Get MPI rank (0 if MPI not available)."""
    if comm is None:
        comm = get_mpi_comm()
    if comm is None:
        return 0
    return comm.Get_rank()


def get_size(comm=None) -> int:
    """Get MPI size (1 if MPI not available)."""
    if comm is None:
        comm = get_mpi_comm()
    if comm is None:
        return 1
    return comm.Get_size()


def is_root(comm=None) -> bool:
    """True on rank 0 or when MPI is not available."""
    return get_rank(comm) == 0


def distribute_items(
    items: List[T],
    comm=None,
) -> List[T]:
    """
    Split items into contiguous, nearly equal chunks, one per rank.

    Parameters
    ----------
    items : list
        Items to distribute.
    comm : MPI.Comm, optional
        MPI communicator. If None, all items are returned.

    Returns
    -------
    local_items : list
        Items assigned to this rank.

    Examples
    --------
    >>> flagged = [i for i in range(len(headers)) if block_to_halos[i]]
    >>> for i in distribute_items(flagged, comm):
    ...     read_block(i)
    """
    if comm is None:
        return list(items)

    rank = comm.Get_rank()
    size = comm.Get_size()

    n_items = len(items)
    items_per_rank = n_items // size
    remainder = n_items % size

    # The first `remainder` ranks take one extra item
    if rank < remainder:
        start = rank * (items_per_rank + 1)
        end = start + items_per_rank + 1
    else:
        start = rank * items_per_rank + remainder
        end = start + items_per_rank

    return list(items[start:end])


def reduce_sum(
    local_value: Union[float, np.ndarray],
    comm=None,
    root: int = 0,
) -> Optional[Union[float, np.ndarray]]:
    """
    Sum values across all ranks.

    Parameters
    ----------
    local_value : float or ndarray
        Partial value from this rank.
    comm : MPI.Comm, optional
        MPI communicator. If None, the local value is returned.
    root : int
        Rank to reduce to.

    Returns
    -------
    total : float or ndarray or None
        Sum on root, None on other ranks.
    """
    if comm is None:
        return local_value

    from mpi4py import MPI
    return comm.reduce(local_value, op=MPI.SUM, root=root)


def barrier(comm=None) -> None:
    """MPI barrier synchronization (no-op without a communicator)."""
    if comm is not None:
        comm.Barrier()


def broadcast(value: T, comm=None, root: int = 0) -> T:
    """
    Send a picklable value from root to every rank.

    Returns `value` unchanged without a communicator.
    """
    if comm is None:
        return value
    return comm.bcast(value, root=root)
