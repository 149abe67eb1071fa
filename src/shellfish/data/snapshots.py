"""
Snapshot Loading Module
=======================

Uniform access to particle blocks stored in several on-disk formats.

A snapshot is split into blocks (one file each). Every format
implements the `ParticleReader` interface; the reader is chosen once from
the global config and passed to the profile stage, which never looks at
the format itself.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Tuple, Type

import h5py
import numpy as np

from ..config import GlobalConfig
from ..exceptions import BlockReadError, ConfigValidationError, SnapshotHeaderError

logger = logging.getLogger(__name__)


# =============================================================================
# Block Header
# =============================================================================

@dataclass(frozen=True)
class SnapshotBlockHeader:
    """
    Spatial metadata for one block of one snapshot.

    Attributes
    ----------
    index : int
        Block index within the snapshot.
    path : str
        File holding the block's particles.
    origin : ndarray
        Lower corner (3,) of the block's axis-aligned region in cMpc/h.
    width : ndarray
        Edge lengths (3,) of the region in cMpc/h.
    box_size : float
        Side length of the periodic simulation box in cMpc/h.
    n_particles : int
        Number of particles of the profiled type in the block.
    redshift : float
        Snapshot redshift.
    """

    index: int
    path: str
    origin: np.ndarray
    width: np.ndarray
    box_size: float
    n_particles: int
    redshift: float = 0.0

    @property
    def center(self) -> np.ndarray:
        return self.origin + self.width / 2

    @property
    def half_width(self) -> np.ndarray:
        return self.width / 2


def _bounding_region(positions: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Origin and width of the axis-aligned box around `positions`."""
    if len(positions) == 0:
        return np.zeros(3), np.zeros(3)
    lo = positions.min(axis=0).astype(np.float64)
    hi = positions.max(axis=0).astype(np.float64)
    return lo, hi - lo


def block_paths(config: GlobalConfig, snap: int) -> List[str]:
    """
    Paths of every block file of a snapshot.

    Examples
    --------
    >>> config = GlobalConfig(snapshot_format='out/snap_{snap:03d}.{block}', block_max=1)
    >>> block_paths(config, 7)
    ['out/snap_007.0', 'out/snap_007.1']
    """
    if not config.snapshot_format:
        raise ConfigValidationError("'snapshot_format' must be set to read snapshots.")

    return [
        config.snapshot_format.format(snap=snap, block=block)
        for block in range(config.block_min, config.block_max + 1)
    ]


# =============================================================================
# Reader Interface
# =============================================================================

class ParticleReader(ABC):
    """
    Capability interface for one on-disk snapshot encoding.

    Parameters
    ----------
    particle_type : int
        Particle type to read.
    position_units : float
        Multiplier converting file positions to cMpc/h.
    mass_units : float
        Multiplier converting file masses to Msun/h.
    """

    def __init__(
        self,
        particle_type: int = 1,
        position_units: float = 1.0,
        mass_units: float = 1.0,
    ):
        self.particle_type = particle_type
        self.position_units = position_units
        self.mass_units = mass_units

    @abstractmethod
    def open(self, path: str) -> Any:
        """Open a block file and return a handle."""

    @abstractmethod
    def read(self, handle: Any) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(positions (N, 3), masses (N,))`` as float32 arrays."""

    @abstractmethod
    def close(self, handle: Any) -> None:
        """Release the handle."""

    @abstractmethod
    def box_size(self, handle: Any) -> float:
        """Periodic box size in cMpc/h."""

    @abstractmethod
    def redshift(self, handle: Any) -> float:
        """Snapshot redshift."""

    def read_block(self, path: str) -> Tuple[np.ndarray, np.ndarray]:
        """Open, read and close one block."""
        handle = self.open(path)
        try:
            return self.read(handle)
        finally:
            self.close(handle)

    def read_header(self, path: str, index: int) -> SnapshotBlockHeader:
        """
        Build the header of a block by scanning its particle positions.

        Raises
        ------
        SnapshotHeaderError
            If the file cannot be opened or parsed.
        """
        try:
            handle = self.open(path)
        except BlockReadError as e:
            raise SnapshotHeaderError(str(e)) from e

        try:
            positions, _ = self.read(handle)
            origin, width = _bounding_region(positions)
            return SnapshotBlockHeader(
                index=index,
                path=str(path),
                origin=origin,
                width=width,
                box_size=self.box_size(handle),
                n_particles=len(positions),
                redshift=self.redshift(handle),
            )
        except (BlockReadError, KeyError, ValueError) as e:
            raise SnapshotHeaderError(f"Could not read header of {path}: {e}") from e
        finally:
            self.close(handle)


# =============================================================================
# Gadget / AREPO HDF5
# =============================================================================

class GadgetHDF5Reader(ParticleReader):
    """
    Reader for Gadget-style HDF5 snapshot files.

    Positions come from ``PartType{N}/Coordinates``; masses from
    ``PartType{N}/Masses`` or, when absent, ``Header/MassTable``.
    """

    def open(self, path: str) -> h5py.File:
        try:
            return h5py.File(path, 'r')
        except OSError as e:
            raise BlockReadError(f"Could not open {path}: {e}") from e

    def read(self, handle: h5py.File) -> Tuple[np.ndarray, np.ndarray]:
        group_name = f'PartType{self.particle_type}'
        if group_name not in handle:
            return np.empty((0, 3), dtype=np.float32), np.empty(0, dtype=np.float32)

        try:
            group = handle[group_name]
            coords = group['Coordinates'][:].astype(np.float64) * self.position_units

            if 'Masses' in group:
                masses = group['Masses'][:].astype(np.float64)
            else:
                mass_table = handle['Header'].attrs['MassTable']
                masses = np.full(len(coords), float(mass_table[self.particle_type]))
        except (KeyError, OSError) as e:
            raise BlockReadError(f"Could not read {group_name} from {handle.filename}: {e}") from e

        return coords.astype(np.float32), (masses * self.mass_units).astype(np.float32)

    def close(self, handle: h5py.File) -> None:
        handle.close()

    def box_size(self, handle: h5py.File) -> float:
        return float(handle['Header'].attrs['BoxSize']) * self.position_units

    def redshift(self, handle: h5py.File) -> float:
        return float(handle['Header'].attrs.get('Redshift', 0.0))


# =============================================================================
# LGadget-2 binary
# =============================================================================

def _lgadget2_header_dtype(byte_order: str) -> np.dtype:
    """The 256-byte Gadget-2 binary header."""
    return np.dtype([
        ('npart', byte_order + 'i4', 6),
        ('mass', byte_order + 'f8', 6),
        ('time', byte_order + 'f8'),
        ('redshift', byte_order + 'f8'),
        ('flag_sfr', byte_order + 'i4'),
        ('flag_feedback', byte_order + 'i4'),
        ('npart_total', byte_order + 'u4', 6),
        ('flag_cooling', byte_order + 'i4'),
        ('num_files', byte_order + 'i4'),
        ('box_size', byte_order + 'f8'),
        ('omega0', byte_order + 'f8'),
        ('omega_lambda', byte_order + 'f8'),
        ('hubble_param', byte_order + 'f8'),
        ('fill', 'u1', 96),
    ])


class LGadget2Reader(ParticleReader):
    """
    Reader for LGadget-2 binary snapshot files.

    Files are sequences of Fortran records: a 256-byte header followed by
    float32 positions of all particles. Particle masses are uniform per
    type and taken from the header mass table.

    Parameters
    ----------
    endianness : str
        'little', 'big' or 'native'.
    """

    _BYTE_ORDER = {'little': '<', 'big': '>', 'native': '='}

    def __init__(self, endianness: str = 'little', **kwargs):
        super().__init__(**kwargs)
        self.byte_order = self._BYTE_ORDER[endianness]
        self.header_dtype = _lgadget2_header_dtype(self.byte_order)

    def open(self, path: str) -> Dict[str, Any]:
        try:
            f = open(path, 'rb')
        except OSError as e:
            raise BlockReadError(f"Could not open {path}: {e}") from e

        try:
            header = self._read_record(f, self.header_dtype, 1)[0]
        except BlockReadError:
            f.close()
            raise
        return {'file': f, 'header': header, 'path': str(path)}

    def _read_record(self, f: BinaryIO, dtype: np.dtype, count: int) -> np.ndarray:
        marker_dtype = np.dtype(self.byte_order + 'i4')
        expected = np.dtype(dtype).itemsize * count

        raw_start = f.read(4)
        raw_data = f.read(expected)
        raw_end = f.read(4)
        if len(raw_start) != 4 or len(raw_data) != expected or len(raw_end) != 4:
            raise BlockReadError(f"Truncated record in {f.name}")

        start = int(np.frombuffer(raw_start, dtype=marker_dtype)[0])
        end = int(np.frombuffer(raw_end, dtype=marker_dtype)[0])
        if start != expected or end != expected:
            raise BlockReadError(
                f"Record markers ({start}, {end}) in {f.name} do not match "
                f"the expected size {expected}; check the endianness setting."
            )
        return np.frombuffer(raw_data, dtype=dtype, count=count)

    def read(self, handle: Dict[str, Any]) -> Tuple[np.ndarray, np.ndarray]:
        header = handle['header']
        npart = header['npart'].astype(np.int64)
        n_total = int(npart.sum())
        offset = int(npart[:self.particle_type].sum())
        n = int(npart[self.particle_type])

        f = handle['file']
        f.seek(self.header_dtype.itemsize + 8)
        positions = self._read_record(f, np.dtype(self.byte_order + 'f4'), 3 * n_total)
        positions = positions.reshape(n_total, 3)[offset:offset + n].astype(np.float64)

        particle_mass = float(header['mass'][self.particle_type])
        if n > 0 and particle_mass <= 0:
            raise BlockReadError(
                f"{handle['path']} has variable particle masses for type "
                f"{self.particle_type}, which LGadget-2 files do not support."
            )

        masses = np.full(n, particle_mass * self.mass_units, dtype=np.float32)
        return (positions * self.position_units).astype(np.float32), masses

    def close(self, handle: Dict[str, Any]) -> None:
        handle['file'].close()

    def box_size(self, handle: Dict[str, Any]) -> float:
        return float(handle['header']['box_size']) * self.position_units

    def redshift(self, handle: Dict[str, Any]) -> float:
        return float(handle['header']['redshift'])


READERS: Dict[str, Type[ParticleReader]] = {
    'gadget-hdf5': GadgetHDF5Reader,
    'lgadget-2': LGadget2Reader,
}


def get_reader(config: GlobalConfig) -> ParticleReader:
    """
    Instantiate the reader for the configured snapshot type.

    Examples
    --------
    >>> reader = get_reader(GlobalConfig(snapshot_type='lgadget-2', endianness='big'))
    """
    kwargs = dict(
        particle_type=config.particle_type,
        position_units=config.position_units,
        mass_units=config.mass_units,
    )
    if config.snapshot_type == 'lgadget-2':
        return LGadget2Reader(endianness=config.endianness, **kwargs)
    try:
        return READERS[config.snapshot_type](**kwargs)
    except KeyError:
        raise ConfigValidationError(f"Unknown snapshot_type '{config.snapshot_type}'")
