"""
Density Profile Module
======================

Streaming computation of log-binned radial density profiles for many
halos at once.

Snapshots are visited in ascending order and every block of a snapshot
is read at most once, no matter how many halos it contributes to. Each
halo owns a row of raw bin masses which is only ever added to, so the
order in which blocks are visited (or the MPI rank that visits them)
does not change the result.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ..config import ProfConfig
from ..data.catalog import HaloCatalog
from ..data.snapshots import ParticleReader, SnapshotBlockHeader
from ..exceptions import BlockReadError, SnapshotHeaderError
from ..geometry import bin_sphere_intersections, bounding_spheres, periodic_displacement
from ..utils.parallel import distribute_items, is_root, reduce_sum

logger = logging.getLogger(__name__)


class HeaderProvider(Protocol):
    def headers(self, snap: int) -> List[SnapshotBlockHeader]:
        ...


@dataclass
class DensityProfile:
    """
    Container for one halo's density profile.

    Attributes
    ----------
    radii : ndarray
        Bin centers in cMpc/h (geometric mean of the bin edges).
    density : ndarray
        Density in each bin in h^2 Msun / cMpc^3.
    mass : ndarray
        Raw particle mass summed in each bin, in Msun/h.
    r_min, r_max : float
        Inner and outer profile radius in cMpc/h.
    halo_id : int
        Halo ID.
    snapshot : int
        Snapshot index.
    """

    radii: np.ndarray
    density: np.ndarray
    mass: np.ndarray
    r_min: float
    r_max: float
    halo_id: int = 0
    snapshot: int = 0

    @property
    def n_bins(self) -> int:
        """Number of radial bins."""
        return len(self.radii)


def log_bin_edges(r_min: float, r_max: float, n_bins: int) -> np.ndarray:
    """Edges of `n_bins` logarithmic bins between `r_min` and `r_max`."""
    lr_min = np.log(r_min)
    dlr = (np.log(r_max) - lr_min) / n_bins
    return np.exp(lr_min + dlr * np.arange(n_bins + 1))


def insert_points(
    mass_bins: np.ndarray,
    center: np.ndarray,
    r_min: float,
    r_max: float,
    positions: np.ndarray,
    masses: np.ndarray,
    box_size: Optional[float] = None,
) -> int:
    """
    Add particle masses into a halo's log-radial bins.

    Particles with ``r <= r_min`` or ``r >= r_max`` are skipped; every
    other particle in the block is still binned.

    Parameters
    ----------
    mass_bins : ndarray
        The halo's raw bin masses (n_bins,). Modified in place.
    center : ndarray
        Halo center (3,).
    r_min, r_max : float
        Profile support in cMpc/h.
    positions : ndarray
        Particle positions (N, 3).
    masses : ndarray
        Particle masses (N,).
    box_size : float, optional
        Box size for periodic boundary handling.

    Returns
    -------
    n_inserted : int
        Number of particles added to the bins.
    """
    if len(positions) == 0:
        return 0

    n_bins = len(mass_bins)
    dx = np.asarray(positions, dtype=np.float64) - np.asarray(center, dtype=np.float64)
    dx = periodic_displacement(dx, box_size)
    r2 = np.einsum('ij,ij->i', dx, dx)

    keep = (r2 > r_min * r_min) & (r2 < r_max * r_max)
    if not np.any(keep):
        return 0

    lr_min = np.log(r_min)
    dlr = (np.log(r_max) - lr_min) / n_bins
    lr = np.log(r2[keep]) / 2

    # Round-off at the outer edge can push an index to n_bins
    ir = np.clip(np.floor((lr - lr_min) / dlr).astype(np.int64), 0, n_bins - 1)
    mass_bins += np.bincount(
        ir, weights=np.asarray(masses, dtype=np.float64)[keep], minlength=n_bins,
    )
    return int(np.count_nonzero(keep))


def normalize_profile(
    mass_bins: np.ndarray,
    r_min: float,
    r_max: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert raw bin masses into a density profile.

    Parameters
    ----------
    mass_bins : ndarray
        Mass in each log-radial bin.
    r_min, r_max : float
        Profile support.

    Returns
    -------
    radii : ndarray
        Bin centers, ``exp(ln r_min + dlr * (j + 0.5))``.
    density : ndarray
        Mass divided by the shell volume ``4/3 pi (r_hi^3 - r_lo^3)``.
        Empty bins have density 0.
    """
    n_bins = len(mass_bins)
    lr_min = np.log(r_min)
    dlr = (np.log(r_max) - lr_min) / n_bins
    j = np.arange(n_bins)

    radii = np.exp(lr_min + dlr * (j + 0.5))
    r_lo = np.exp(lr_min + dlr * j)
    r_hi = np.exp(lr_min + dlr * (j + 1))
    volumes = 4 / 3 * np.pi * (r_hi**3 - r_lo**3)

    return radii, np.asarray(mass_bins, dtype=np.float64) / volumes


class ProfileAccumulator:
    """
    Raw bin masses for every halo of a catalog.

    Parameters
    ----------
    positions : ndarray
        Halo centers (N, 3) in cMpc/h.
    r200m : ndarray
        Halo radii (N,) in cMpc/h.
    config : ProfConfig
        Binning configuration.

    Examples
    --------
    >>> acc = ProfileAccumulator(catalog.positions, catalog.r200m, ProfConfig())
    >>> acc.add_block(xs, ms, halo_indices=[0, 4], box_size=125.0)
    >>> radii, density = normalize_profile(acc.mass[0], acc.r_min[0], acc.r_max[0])
    """

    def __init__(self, positions: np.ndarray, r200m: np.ndarray, config: ProfConfig):
        self.centers = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
        self.r200m = np.asarray(r200m, dtype=np.float64)
        self.config = config
        self.r_min = self.r200m * config.r_min_mult
        self.r_max = self.r200m * config.r_max_mult
        self.mass = np.zeros((len(self.r200m), config.bins), dtype=np.float64)

    @property
    def n_halos(self) -> int:
        return len(self.r200m)

    def add_block(
        self,
        positions: np.ndarray,
        masses: np.ndarray,
        halo_indices: Sequence[int],
        box_size: Optional[float] = None,
    ) -> None:
        """
        Bin one block's particles into each of the given halos.

        A k-d tree over the block selects candidate particles within
        each halo's outer radius; `insert_points` then applies the exact
        binning rule.
        """
        if len(positions) == 0 or len(halo_indices) == 0:
            return

        positions = np.asarray(positions, dtype=np.float64)
        centers = self.centers[list(halo_indices)].astype(np.float64)

        if box_size:
            positions = np.mod(positions, box_size)
            positions[positions >= box_size] = 0.0
            centers = np.mod(centers, box_size)
            centers[centers >= box_size] = 0.0
            tree = cKDTree(positions, boxsize=box_size)
        else:
            tree = cKDTree(positions)

        for center, j in zip(centers, halo_indices):
            # Slightly widened search; the exact cut happens in insert_points
            candidates = tree.query_ball_point(center, r=self.r_max[j] * (1 + 1e-6))
            if not candidates:
                continue
            candidates = np.asarray(candidates, dtype=np.int64)
            insert_points(
                self.mass[j], center, self.r_min[j], self.r_max[j],
                positions[candidates], np.asarray(masses)[candidates], box_size,
            )

    def merge(self, other: 'ProfileAccumulator') -> None:
        """Add another accumulator's partial sums into this one."""
        if other.mass.shape != self.mass.shape:
            raise ValueError(
                f"Cannot merge accumulators of shape {other.mass.shape} and {self.mass.shape}"
            )
        self.mass += other.mass

    def profile(self, j: int, halo_id: int = 0, snapshot: int = 0) -> DensityProfile:
        """Normalized profile of halo `j`."""
        radii, density = normalize_profile(self.mass[j], self.r_min[j], self.r_max[j])
        return DensityProfile(
            radii=radii,
            density=density,
            mass=self.mass[j].copy(),
            r_min=float(self.r_min[j]),
            r_max=float(self.r_max[j]),
            halo_id=halo_id,
            snapshot=snapshot,
        )


def _read_block(
    reader: ParticleReader,
    header: SnapshotBlockHeader,
    snap: int,
) -> Tuple[np.ndarray, np.ndarray]:
    try:
        handle = reader.open(header.path)
    except (BlockReadError, OSError) as e:
        raise BlockReadError(f"Snapshot {snap}, block {header.index}: {e}") from e

    try:
        return reader.read(handle)
    except (BlockReadError, OSError, ValueError) as e:
        raise BlockReadError(f"Snapshot {snap}, block {header.index}: {e}") from e
    finally:
        reader.close(handle)


def accumulate_snapshot(
    accumulator: ProfileAccumulator,
    snap: int,
    halo_rows: Sequence[int],
    header_provider: HeaderProvider,
    reader: ParticleReader,
    comm=None,
) -> int:
    """
    Add every particle of one snapshot to the halos living in it.

    Parameters
    ----------
    accumulator : ProfileAccumulator
        Per-halo bins, indexed by catalog row.
    snap : int
        Snapshot index.
    halo_rows : sequence of int
        Catalog rows of the halos in this snapshot.
    header_provider : HeaderProvider
        Source of the snapshot's block headers.
    reader : ParticleReader
        Reader for the snapshot's block files.
    comm : MPI.Comm, optional
        Blocks are split between ranks when given.

    Returns
    -------
    n_read : int
        Number of blocks read by this rank.
    """
    headers = header_provider.headers(snap)
    if len(headers) == 0:
        raise SnapshotHeaderError(f"Snapshot {snap} has no blocks")

    spheres = bounding_spheres(
        accumulator.centers[list(halo_rows)],
        accumulator.r200m[list(halo_rows)],
        accumulator.config.r_max_mult,
    )
    _, block_to_halos = bin_sphere_intersections(headers, spheres)

    flagged = [i for i in range(len(headers)) if block_to_halos[i]]
    local = distribute_items(flagged, comm)
    logger.info(
        f"Snapshot {snap}: {len(halo_rows)} halos intersect {len(flagged)} "
        f"of {len(headers)} blocks"
    )

    for i in local:
        hd = headers[i]
        rows = [halo_rows[j] for j in block_to_halos[i]]
        logger.debug(f"Snapshot {snap}, block {hd.index} -> {len(rows)} halos")

        positions, masses = _read_block(reader, hd, snap)
        accumulator.add_block(positions, masses, rows, hd.box_size)

    return len(local)


def compute_profiles(
    catalog: HaloCatalog,
    header_provider: HeaderProvider,
    reader: ParticleReader,
    config: ProfConfig,
    comm=None,
) -> Optional[List[Optional[DensityProfile]]]:
    """
    Density profiles for every halo of a catalog.

    Parameters
    ----------
    catalog : HaloCatalog
        Input halos. Sentinel rows (snapshot -1) are carried through.
    header_provider : HeaderProvider
        Block headers keyed by snapshot, e.g. a `HeaderCache`.
    reader : ParticleReader
        Reader for the configured snapshot format.
    config : ProfConfig
        Binning configuration.
    comm : MPI.Comm, optional
        When given, blocks are split between ranks and partial bins are
        summed on rank 0.

    Returns
    -------
    profiles : list or None
        One entry per catalog row, None for sentinel rows. Ranks other
        than 0 return None.

    Raises
    ------
    MalformedInputError
        If the catalog is empty.
    SnapshotHeaderError, BlockReadError
        If any snapshot or block cannot be read.
    """
    t0 = time.perf_counter()
    snap_bins, sorted_snaps = catalog.group_by_snapshot()
    accumulator = ProfileAccumulator(catalog.positions, catalog.r200m, config)

    for snap in sorted_snaps:
        t_snap = time.perf_counter()
        accumulate_snapshot(accumulator, snap, snap_bins[snap], header_provider, reader, comm)
        logger.debug(f"Snapshot {snap} done in {time.perf_counter() - t_snap:.2f} s")

    total = reduce_sum(accumulator.mass, comm)
    if not is_root(comm):
        return None
    accumulator.mass = np.asarray(total, dtype=np.float64)

    profiles: List[Optional[DensityProfile]] = []
    for j, record in enumerate(catalog.records()):
        if record.is_sentinel:
            profiles.append(None)
        else:
            profiles.append(accumulator.profile(j, halo_id=record.id, snapshot=record.snapshot))

    logger.info(f"Computed {len(sorted_snaps)} snapshots in {time.perf_counter() - t0:.2f} s")
    return profiles
