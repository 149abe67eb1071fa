"""
Halo Catalog Module
===================

Whitespace-separated text catalogs passed between pipeline stages, and
grouping of input halos by snapshot.

Stages communicate through plain-text catalogs: one row per halo, ``#``
comment lines, and sentinel rows whose ID is ``-1`` separating the
histories of different halos.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

import numpy as np

from ..exceptions import MalformedInputError

logger = logging.getLogger(__name__)

SENTINEL = -1


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class HaloRecord:
    """
    One input halo.

    Attributes
    ----------
    id : int
        Halo catalog ID.
    snapshot : int
        Snapshot index the halo lives in.
    position : ndarray
        Center (3,) in comoving Mpc/h.
    r200m : float
        R200m in comoving Mpc/h.
    """

    id: int
    snapshot: int
    position: np.ndarray
    r200m: float

    @property
    def is_sentinel(self) -> bool:
        """Rows with snapshot -1 are placeholders and are never profiled."""
        return self.snapshot == SENTINEL


@dataclass
class HaloCatalog:
    """
    Column-oriented container for the profile-mode input catalog.

    Parameters
    ----------
    ids : ndarray
        Integer halo IDs (N,).
    snapshots : ndarray
        Integer snapshot indices (N,).
    positions : ndarray
        Halo centers (N, 3) in cMpc/h.
    r200m : ndarray
        Halo radii (N,) in cMpc/h.

    Examples
    --------
    >>> catalog = HaloCatalog.from_lines(sys.stdin.read().splitlines())
    >>> snap_bins, snaps = catalog.group_by_snapshot()
    """

    ids: np.ndarray
    snapshots: np.ndarray
    positions: np.ndarray
    r200m: np.ndarray

    def __post_init__(self):
        self.ids = np.asarray(self.ids, dtype=np.int64)
        self.snapshots = np.asarray(self.snapshots, dtype=np.int64)
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        self.r200m = np.asarray(self.r200m, dtype=np.float64)

        n = len(self.ids)
        lengths = {len(self.snapshots), len(self.positions), len(self.r200m)}
        if lengths != {n}:
            raise MalformedInputError(
                f"Catalog columns have mismatched lengths: ids={n}, "
                f"snapshots={len(self.snapshots)}, positions={len(self.positions)}, "
                f"r200m={len(self.r200m)}"
            )

        bad = ~self.sentinel_mask & ~(self.r200m > 0)
        if np.any(bad):
            row = int(np.flatnonzero(bad)[0])
            raise MalformedInputError(
                f"Halo {self.ids[row]} in snapshot {self.snapshots[row]} has "
                f"non-positive R200m {self.r200m[row]}"
            )

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> 'HaloCatalog':
        """
        Parse ``ID Snapshot X Y Z R200m`` rows.

        Raises
        ------
        MalformedInputError
            If no halo rows are present or a row cannot be parsed.
        """
        int_cols, float_cols = parse_cols(lines, [0, 1], [2, 3, 4, 5])
        if len(int_cols[0]) == 0:
            raise MalformedInputError("No input IDs.")

        return cls(
            ids=int_cols[0],
            snapshots=int_cols[1],
            positions=np.column_stack(float_cols[:3]),
            r200m=float_cols[3],
        )

    @property
    def n_halos(self) -> int:
        """Number of rows, sentinels included."""
        return len(self.ids)

    @property
    def sentinel_mask(self) -> np.ndarray:
        """True for separator rows."""
        return self.snapshots == SENTINEL

    def records(self) -> Iterator[HaloRecord]:
        for i in range(self.n_halos):
            yield HaloRecord(
                id=int(self.ids[i]),
                snapshot=int(self.snapshots[i]),
                position=self.positions[i],
                r200m=float(self.r200m[i]),
            )

    def group_by_snapshot(self) -> Tuple[Dict[int, List[int]], List[int]]:
        """Group row indices by snapshot. See `group_by_snapshot`."""
        return group_by_snapshot(self.ids, self.snapshots)


# =============================================================================
# Grouping
# =============================================================================

def group_by_snapshot(
    ids: Sequence[int],
    snapshots: Sequence[int],
) -> Tuple[Dict[int, List[int]], List[int]]:
    """
    Group halo row indices by snapshot.

    Parameters
    ----------
    ids : sequence of int
        Halo IDs.
    snapshots : sequence of int
        Snapshot index of each halo.

    Returns
    -------
    snap_bins : dict
        Snapshot index to the list of row indices in that snapshot, in
        input order.
    sorted_snaps : list of int
        Distinct snapshots in ascending order. The sentinel snapshot -1
        is grouped but never listed here, so it is never loaded.

    Raises
    ------
    MalformedInputError
        If the columns differ in length or are empty.

    Examples
    --------
    >>> group_by_snapshot([4, 8, 9], [100, 90, 100])
    ({100: [0, 2], 90: [1]}, [90, 100])
    """
    if len(ids) != len(snapshots):
        raise MalformedInputError(
            f"Got {len(ids)} IDs but {len(snapshots)} snapshots."
        )
    if len(ids) == 0:
        raise MalformedInputError("No input IDs.")

    snap_bins: Dict[int, List[int]] = {}
    for idx, snap in enumerate(snapshots):
        snap_bins.setdefault(int(snap), []).append(idx)

    sorted_snaps = sorted(snap for snap in snap_bins if snap != SENTINEL)
    return snap_bins, sorted_snaps


# =============================================================================
# Text Parsing and Formatting
# =============================================================================

def parse_cols(
    lines: Iterable[str],
    int_cols: Sequence[int],
    float_cols: Sequence[int],
) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """
    Parse selected columns from a whitespace-separated text catalog.

    Blank lines and lines starting with ``#`` are skipped. Sentinel rows
    (first column ``-1``) may be shorter than regular rows; their missing
    columns are filled with -1.

    Parameters
    ----------
    lines : iterable of str
        Catalog lines.
    int_cols : sequence of int
        Indices of columns parsed as integers.
    float_cols : sequence of int
        Indices of columns parsed as floats.

    Returns
    -------
    ints : list of ndarray
        One int64 array per requested integer column.
    floats : list of ndarray
        One float64 array per requested float column.

    Raises
    ------
    MalformedInputError
        If a non-sentinel row is too short or not numeric.
    """
    n_required = max(list(int_cols) + list(float_cols), default=-1) + 1
    int_vals: List[List[int]] = [[] for _ in int_cols]
    float_vals: List[List[float]] = [[] for _ in float_cols]

    for line_num, line in enumerate(lines, start=1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        tokens = line.split()
        try:
            is_sentinel = int(tokens[0]) == SENTINEL
        except ValueError:
            raise MalformedInputError(
                f"Line {line_num}: could not parse '{tokens[0]}' as an integer ID."
            )

        if len(tokens) < n_required:
            if not is_sentinel:
                raise MalformedInputError(
                    f"Line {line_num}: expected at least {n_required} columns, "
                    f"got {len(tokens)}."
                )
            tokens = tokens + [str(SENTINEL)] * (n_required - len(tokens))

        try:
            for out, col in zip(int_vals, int_cols):
                out.append(int(tokens[col]))
            for out, col in zip(float_vals, float_cols):
                out.append(float(tokens[col]))
        except ValueError as e:
            raise MalformedInputError(f"Line {line_num}: {e}") from e

    ints = [np.array(vals, dtype=np.int64) for vals in int_vals]
    floats = [np.array(vals, dtype=np.float64) for vals in float_vals]
    return ints, floats


def format_cols(
    int_cols: Sequence[Sequence[int]],
    float_cols: Sequence[Sequence[float]] = (),
) -> List[str]:
    """
    Format columns as catalog rows, integer columns first.

    Returns
    -------
    lines : list of str
        One line per row, without trailing newlines.
    """
    columns = list(int_cols) + list(float_cols)
    if not columns:
        return []

    n_rows = len(columns[0])
    for col in columns:
        if len(col) != n_rows:
            raise ValueError("All columns must have the same length")

    n_int = len(int_cols)
    lines = []
    for i in range(n_rows):
        row = [f"{int(col[i])}" for col in columns[:n_int]]
        row += [f"{float(col[i]):.6g}" for col in columns[n_int:]]
        lines.append(' '.join(row))

    return lines


def comment_string(names: Sequence[str], counts: Sequence[int] = ()) -> str:
    """
    Header comment naming each column group and the columns it spans.

    Parameters
    ----------
    names : sequence of str
        Column group names, in column order.
    counts : sequence of int, optional
        Number of columns in each group. Defaults to 1 for every group.

    Examples
    --------
    >>> comment_string(['ID', 'Snapshot', 'R'], [1, 1, 3])
    '# ID(0) Snapshot(1) R(2-4)'
    """
    counts = list(counts) if counts else [1] * len(names)
    if len(counts) != len(names):
        raise ValueError("names and counts must have the same length")

    parts = []
    start = 0
    for name, count in zip(names, counts):
        if count == 1:
            parts.append(f"{name}({start})")
        else:
            parts.append(f"{name}({start}-{start + count - 1})")
        start += count

    return '# ' + ' '.join(parts)
