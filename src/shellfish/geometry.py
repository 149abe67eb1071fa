"""
Geometry Module
===============

Halo bounding spheres and their intersections with snapshot blocks in a
periodic simulation volume.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .data.snapshots import SnapshotBlockHeader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingSphere:
    """
    Sphere enclosing every particle that can enter a halo's profile.

    Attributes
    ----------
    center : ndarray
        Center (3,) in cMpc/h, float32.
    radius : float
        R200m times the outer radius multiplier, in cMpc/h.
    """

    center: np.ndarray
    radius: np.float32


def bounding_spheres(
    positions: np.ndarray,
    r200m: np.ndarray,
    r_max_mult: float,
) -> List[BoundingSphere]:
    """
    Bounding spheres of a set of halos.

    Parameters
    ----------
    positions : ndarray
        Halo centers (N, 3) in cMpc/h.
    r200m : ndarray
        Halo radii (N,) in cMpc/h.
    r_max_mult : float
        Outer profile radius in units of R200m.

    Returns
    -------
    spheres : list of BoundingSphere
    """
    positions = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
    radii = (np.asarray(r200m, dtype=np.float64) * r_max_mult).astype(np.float32)

    return [
        BoundingSphere(center=positions[i].copy(), radius=radii[i])
        for i in range(len(radii))
    ]


def periodic_displacement(
    dx: np.ndarray,
    box_size: Optional[float],
) -> np.ndarray:
    """
    Minimum-image displacement on a periodic box of side `box_size`.

    Examples
    --------
    >>> periodic_displacement(np.array([95.0, -60.0, 10.0]), 100.0)
    array([-5., 40., 10.])
    """
    if box_size is None or box_size <= 0:
        return dx
    return dx - box_size * np.round(dx / box_size)


def sphere_intersects_block(
    sphere: BoundingSphere,
    header: SnapshotBlockHeader,
) -> bool:
    """
    Whether a sphere overlaps a block's axis-aligned region.

    The simulation volume is treated as a 3-torus, so a sphere near one
    face of the box can overlap a block on the opposite face.
    """
    center = np.asarray(sphere.center, dtype=np.float64)
    dx = periodic_displacement(center - header.center, header.box_size)
    excess = np.maximum(np.abs(dx) - header.half_width, 0.0)
    return float(np.sum(excess**2)) <= float(sphere.radius)**2


def bin_sphere_intersections(
    headers: Sequence[SnapshotBlockHeader],
    spheres: Sequence[BoundingSphere],
) -> Tuple[List[List[int]], List[List[int]]]:
    """
    Find which halos overlap which blocks.

    Parameters
    ----------
    headers : sequence of SnapshotBlockHeader
        Blocks of one snapshot.
    spheres : sequence of BoundingSphere
        Halos active in that snapshot.

    Returns
    -------
    halo_to_blocks : list of list of int
        For each sphere, indices into `headers` of the blocks it overlaps.
    block_to_halos : list of list of int
        For each block, indices into `spheres` of the halos overlapping it.
    """
    halo_to_blocks: List[List[int]] = [[] for _ in spheres]
    block_to_halos: List[List[int]] = [[] for _ in headers]

    if len(spheres) == 0 or len(headers) == 0:
        return halo_to_blocks, block_to_halos

    centers = np.array([s.center for s in spheres], dtype=np.float64)
    radii2 = np.array([s.radius for s in spheres], dtype=np.float64)**2

    for i, hd in enumerate(headers):
        dx = periodic_displacement(centers - hd.center, hd.box_size)
        excess = np.maximum(np.abs(dx) - hd.half_width, 0.0)
        hits = np.flatnonzero(np.sum(excess**2, axis=1) <= radii2)

        block_to_halos[i] = hits.tolist()
        for j in hits:
            halo_to_blocks[j].append(i)

    return halo_to_blocks, block_to_halos
