"""
Merger Tree Module
==================

Discovery and parsing of consistent-trees ``tree_*.dat`` files, and
main-progenitor branch queries.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple, Union

import numpy as np

from ..exceptions import MalformedInputError, TreeDiscoveryError

logger = logging.getLogger(__name__)

# Default consistent-trees column layout, used when a file has no header
DEFAULT_COLUMNS = {
    'id': 1,
    'desc_id': 3,
    'mmp?': 14,
    'Orig_halo_ID': 30,
    'Snap_num': 31,
}

_COLUMN_PATTERN = re.compile(r'([^\s(]+)\((\d+)\)')


def find_tree_files(tree_dir: Union[str, Path]) -> List[Path]:
    """
    List the ``tree_*.dat`` files of a simulation.

    Raises
    ------
    TreeDiscoveryError
        If the directory cannot be listed or holds no tree files.
    """
    tree_dir = Path(tree_dir)
    try:
        names = sorted(p for p in tree_dir.iterdir() if p.is_file())
    except OSError as e:
        raise TreeDiscoveryError(f"Could not list tree directory '{tree_dir}': {e}") from e

    trees = [p for p in names if p.name.startswith('tree_') and p.suffix == '.dat']
    if not trees:
        raise TreeDiscoveryError(f"No tree_*.dat files found in '{tree_dir}'")

    logger.info(f"Found {len(trees)} tree files in {tree_dir}")
    return trees


def _header_columns(line: str) -> Dict[str, int]:
    """Column indices named in a ``#scale(0) id(1) ...`` header line."""
    found = {name: int(idx) for name, idx in _COLUMN_PATTERN.findall(line.lstrip('#'))}
    return {key: found[key] for key in DEFAULT_COLUMNS if key in found}


def parse_tree_file(lines: Iterable[str]) -> Dict[str, np.ndarray]:
    """
    Extract the columns needed for branch walking from a tree file.

    Returns
    -------
    columns : dict
        int64 arrays keyed like `DEFAULT_COLUMNS`.
    """
    columns = dict(DEFAULT_COLUMNS)
    values: Dict[str, List[int]] = {key: [] for key in columns}
    n_required = max(columns.values()) + 1

    for line_num, line in enumerate(lines, start=1):
        if line.startswith('#'):
            if line_num == 1:
                columns.update(_header_columns(line))
                n_required = max(columns.values()) + 1
            continue

        tokens = line.split()
        if len(tokens) <= 1:
            # Blank lines and the tree-count line
            continue
        if len(tokens) < n_required:
            raise MalformedInputError(
                f"Tree file line {line_num}: expected at least {n_required} "
                f"columns, found {len(tokens)}"
            )

        try:
            for key, col in columns.items():
                values[key].append(int(float(tokens[col])))
        except ValueError as e:
            raise MalformedInputError(f"Tree file line {line_num}: {e}") from e

    return {key: np.array(vals, dtype=np.int64) for key, vals in values.items()}


class TreeForest:
    """
    Main-progenitor lookups over a set of merger trees.

    Parameters
    ----------
    tree_ids, desc_ids, mmp, halo_ids, snapshots : array_like
        Per-node tree ID, descendant tree ID, most-massive-progenitor
        flag, halo catalog ID and snapshot index.

    Examples
    --------
    >>> forest = TreeForest.from_files(find_tree_files('/sims/L125/trees'))
    >>> forest.branch(1204, 100)
    [(1204, 100), (1187, 99), ...]
    """

    def __init__(
        self,
        tree_ids: Sequence[int],
        desc_ids: Sequence[int],
        mmp: Sequence[int],
        halo_ids: Sequence[int],
        snapshots: Sequence[int],
    ):
        self.tree_ids = np.asarray(tree_ids, dtype=np.int64)
        self.desc_ids = np.asarray(desc_ids, dtype=np.int64)
        self.mmp = np.asarray(mmp, dtype=np.int64)
        self.halo_ids = np.asarray(halo_ids, dtype=np.int64)
        self.snapshots = np.asarray(snapshots, dtype=np.int64)

        self._by_halo: Dict[Tuple[int, int], int] = {}
        self._main_progenitor: Dict[int, int] = {}

        for row in range(len(self.tree_ids)):
            key = (int(self.halo_ids[row]), int(self.snapshots[row]))
            self._by_halo.setdefault(key, row)
            if self.mmp[row] == 1 and self.desc_ids[row] >= 0:
                self._main_progenitor[int(self.desc_ids[row])] = row

    @classmethod
    def from_files(
        cls,
        paths: Iterable[Union[str, Path]],
        snap_offset: int = 0,
    ) -> 'TreeForest':
        """
        Load every tree file.

        Parameters
        ----------
        paths : iterable of path
            Tree files, usually from `find_tree_files`.
        snap_offset : int
            Added to ``Snap_num`` to give snapshot indices.
        """
        parts = []
        for path in paths:
            logger.debug(f"Reading tree file {path}")
            with open(path, 'r') as f:
                parts.append(parse_tree_file(f))

        def joined(key):
            arrays = [p[key] for p in parts]
            return np.concatenate(arrays) if arrays else np.empty(0, dtype=np.int64)

        return cls(
            tree_ids=joined('id'),
            desc_ids=joined('desc_id'),
            mmp=joined('mmp?'),
            halo_ids=joined('Orig_halo_ID'),
            snapshots=joined('Snap_num') + snap_offset,
        )

    @property
    def n_nodes(self) -> int:
        return len(self.tree_ids)

    def branch(self, halo_id: int, snap: int) -> List[Tuple[int, int]]:
        """
        Main-progenitor branch of a halo, from the halo backward in time.

        Returns
        -------
        branch : list of (int, int)
            ``(halo_id, snapshot)`` pairs. Empty if the halo is not in
            any tree.
        """
        row = self._by_halo.get((int(halo_id), int(snap)))
        if row is None:
            return []

        branch = []
        for _ in range(self.n_nodes):
            branch.append((int(self.halo_ids[row]), int(self.snapshots[row])))
            row = self._main_progenitor.get(int(self.tree_ids[row]))
            if row is None:
                break

        return branch
