"""
Header Cache Module
===================

Memoized block headers keyed by snapshot index.

Computing a block's spatial region means scanning every particle in the
block, so headers are computed once per snapshot and stored in a memo
directory. The directory records a fingerprint of the configuration
that produced it; when the fingerprint no longer matches, the cached
headers are discarded and rebuilt.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from ..config import GlobalConfig
from ..exceptions import ConfigValidationError, SnapshotHeaderError
from ..utils.io_helpers import load_hdf5, load_yaml, save_hdf5, save_yaml
from ..utils.parallel import barrier, broadcast, is_root
from .snapshots import ParticleReader, SnapshotBlockHeader, block_paths

logger = logging.getLogger(__name__)

MEMO_FILE = 'memo.yaml'


def check_memo_dir(memo_dir: Path, config: GlobalConfig) -> bool:
    """
    Make sure the memo directory matches the current configuration.

    Parameters
    ----------
    memo_dir : Path
        Memo directory. Created if missing.
    config : GlobalConfig
        Current configuration.

    Returns
    -------
    invalidated : bool
        True if stale cached headers were removed.
    """
    memo_dir.mkdir(parents=True, exist_ok=True)
    memo_file = memo_dir / MEMO_FILE
    fingerprint = config.memo_fingerprint()

    stored: Optional[str] = None
    if memo_file.exists():
        stored = load_yaml(memo_file).get('fingerprint')

    if stored == fingerprint:
        return False

    invalidated = False
    if stored is not None:
        logger.warning(
            f"Memo directory {memo_dir} was built with a different configuration; "
            "rebuilding cached headers."
        )
        for path in memo_dir.glob('headers_*.h5'):
            path.unlink()
        invalidated = True

    save_yaml(memo_file, {
        'fingerprint': fingerprint,
        'snapshot_type': config.snapshot_type,
        'snapshot_format': config.snapshot_format,
    })
    return invalidated


class HeaderCache:
    """
    Provider of block headers for a snapshot.

    Parameters
    ----------
    config : GlobalConfig
        Global configuration (block layout, memo directory).
    reader : ParticleReader
        Reader used to scan blocks on a cache miss.
    comm : MPI.Comm, optional
        When given, only rank 0 touches the memo directory and scans
        blocks; the other ranks receive the headers by broadcast.

    Examples
    --------
    >>> cache = HeaderCache(config, get_reader(config))
    >>> headers = cache.headers(100)
    >>> print(len(headers), headers[0].box_size)
    """

    def __init__(self, config: GlobalConfig, reader: ParticleReader, comm=None):
        self.config = config
        self.reader = reader
        self.comm = comm
        self.memo_dir = Path(config.memo_dir) if config.memo_dir else None
        self._headers: Dict[int, List[SnapshotBlockHeader]] = {}

        if self.memo_dir is not None and is_root(comm):
            try:
                check_memo_dir(self.memo_dir, config)
            except OSError as e:
                raise SnapshotHeaderError(f"Memo directory {self.memo_dir}: {e}") from e
        barrier(comm)

    def _memo_path(self, snap: int) -> Path:
        return self.memo_dir / f'headers_{snap:04d}.h5'

    def headers(self, snap: int) -> List[SnapshotBlockHeader]:
        """
        Headers of every block of a snapshot, in block order.

        Raises
        ------
        SnapshotHeaderError
            If any block's metadata cannot be obtained.
        """
        if snap in self._headers:
            return self._headers[snap]

        headers = None
        if is_root(self.comm):
            headers = self._build(snap)
        headers = broadcast(headers, self.comm)

        self._headers[snap] = headers
        return headers

    def _build(self, snap: int) -> List[SnapshotBlockHeader]:
        headers = None
        if self.memo_dir is not None and self._memo_path(snap).exists():
            headers = self._load(snap)

        if headers is None:
            headers = self._scan(snap)
            if self.memo_dir is not None:
                self._save(snap, headers)
        return headers

    def _scan(self, snap: int) -> List[SnapshotBlockHeader]:
        try:
            paths = block_paths(self.config, snap)
        except ConfigValidationError as e:
            raise SnapshotHeaderError(f"Snapshot {snap}: {e}") from e

        logger.info(f"Reading {len(paths)} block headers for snapshot {snap}")

        headers = []
        for index, path in zip(range(self.config.block_min, self.config.block_max + 1), paths):
            if not Path(path).exists():
                raise SnapshotHeaderError(f"Snapshot {snap}: block file {path} does not exist")
            try:
                headers.append(self.reader.read_header(path, index))
            except SnapshotHeaderError as e:
                raise SnapshotHeaderError(f"Snapshot {snap}: {e}") from e

        return headers

    def _save(self, snap: int, headers: List[SnapshotBlockHeader]) -> None:
        data = {
            'index': np.array([hd.index for hd in headers], dtype=np.int64),
            'path': np.array([hd.path for hd in headers]),
            'origin': np.array([hd.origin for hd in headers], dtype=np.float64).reshape(-1, 3),
            'width': np.array([hd.width for hd in headers], dtype=np.float64).reshape(-1, 3),
            'box_size': np.array([hd.box_size for hd in headers], dtype=np.float64),
            'n_particles': np.array([hd.n_particles for hd in headers], dtype=np.int64),
            'redshift': np.array([hd.redshift for hd in headers], dtype=np.float64),
        }
        try:
            save_hdf5(self._memo_path(snap), data, attrs={'snap': snap})
        except OSError as e:
            raise SnapshotHeaderError(
                f"Snapshot {snap}: could not write {self._memo_path(snap)}: {e}"
            ) from e

    def _load(self, snap: int) -> Optional[List[SnapshotBlockHeader]]:
        try:
            data = load_hdf5(self._memo_path(snap))
            n_blocks = len(data['index'])
        except (OSError, KeyError) as e:
            logger.warning(f"Ignoring unreadable memo file for snapshot {snap}: {e}")
            return None

        return [
            SnapshotBlockHeader(
                index=int(data['index'][i]),
                path=str(data['path'][i]),
                origin=data['origin'][i],
                width=data['width'][i],
                box_size=float(data['box_size'][i]),
                n_particles=int(data['n_particles'][i]),
                redshift=float(data['redshift'][i]),
            )
            for i in range(n_blocks)
        ]
