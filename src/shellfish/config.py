"""
Configuration Module
====================

Dataclass configuration objects for the pipeline. Configuration is
loaded from YAML, optionally overridden from the command line, validated
once and then passed explicitly into every stage.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

from .exceptions import ConfigValidationError
from .utils.io_helpers import load_yaml

logger = logging.getLogger(__name__)

C = TypeVar('C', bound='_ConfigBase')

SNAPSHOT_TYPES = ('gadget-hdf5', 'lgadget-2')
ENDIANNESS = ('little', 'big', 'native')

# Bump when the layout of memoized header files changes.
MEMO_FORMAT_VERSION = 1


def _require_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(
            f"The variable '{name}' must be an integer, got {value!r}."
        )


def _require_number(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigValidationError(
            f"The variable '{name}' must be a number, got {value!r}."
        )


def _require_str(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise ConfigValidationError(
            f"The variable '{name}' must be a string, got {value!r}."
        )


class _ConfigBase:
    """Shared loading and override logic for config dataclasses."""

    @classmethod
    def from_dict(cls: Type[C], values: Optional[Dict[str, Any]]) -> C:
        """
        Build a config from a mapping, rejecting unknown keys.

        Raises
        ------
        ConfigValidationError
            If a key is not a field of this config or a value is invalid.
        """
        values = dict(values or {})
        names = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - names)
        if unknown:
            raise ConfigValidationError(
                f"Unknown {cls.__name__} variable(s): {', '.join(unknown)}"
            )

        config = cls(**values)
        config.validate()
        return config

    @classmethod
    def from_yaml(cls: Type[C], path: Optional[Union[str, Path]]) -> C:
        """Load a config file. ``None`` gives the defaults."""
        if path is None:
            return cls.from_dict({})

        try:
            values = load_yaml(path)
        except FileNotFoundError as e:
            raise ConfigValidationError(str(e)) from e

        if not isinstance(values, dict):
            raise ConfigValidationError(
                f"Config file {path} must contain a mapping, got {type(values).__name__}"
            )

        logger.info(f"Loaded {cls.__name__} from {path}")
        return cls.from_dict(values)

    def with_overrides(self: C, **overrides: Any) -> C:
        """Return a validated copy with the non-None overrides applied."""
        overrides = {k: v for k, v in overrides.items() if v is not None}
        config = dataclasses.replace(self, **overrides)
        config.validate()
        return config

    def validate(self) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class ProfConfig(_ConfigBase):
    """
    Configuration of the density profile mode.

    Attributes
    ----------
    bins : int
        Number of logarithmic radial bins in every profile.
    r_max_mult : float
        Maximum profile radius in units of R200m.
    r_min_mult : float
        Minimum profile radius in units of R200m.
    """

    bins: int = 150
    r_max_mult: float = 3.0
    r_min_mult: float = 0.03

    def validate(self) -> None:
        _require_int('bins', self.bins)
        _require_number('r_min_mult', self.r_min_mult)
        _require_number('r_max_mult', self.r_max_mult)

        if self.bins <= 0:
            raise ConfigValidationError(f"The variable 'bins' was set to {self.bins!r}.")
        if not self.r_min_mult > 0:
            raise ConfigValidationError(
                f"The variable 'r_min_mult' was set to {self.r_min_mult!r}."
            )
        if not self.r_max_mult > 0:
            raise ConfigValidationError(
                f"The variable 'r_max_mult' was set to {self.r_max_mult!r}."
            )
        if self.r_min_mult >= self.r_max_mult:
            raise ConfigValidationError(
                f"'r_min_mult' ({self.r_min_mult}) must be smaller than "
                f"'r_max_mult' ({self.r_max_mult})."
            )


@dataclass(frozen=True)
class GlobalConfig(_ConfigBase):
    """
    Simulation-wide configuration shared by all modes.

    Attributes
    ----------
    snapshot_type : str
        Particle file encoding, one of ``SNAPSHOT_TYPES``.
    snapshot_format : str
        Path template for a block file with ``{snap}`` and ``{block}``
        fields, e.g. ``'/sims/L125/snapdir_{snap:03d}/snap_{snap:03d}.{block}.hdf5'``.
    block_min, block_max : int
        Inclusive range of block indices making up one snapshot.
    endianness : str
        Byte order of binary snapshot files.
    position_units : float
        Multiplier converting file positions to cMpc/h.
    mass_units : float
        Multiplier converting file masses to Msun/h.
    particle_type : int
        Gadget particle type to profile (1 is dark matter).
    tree_dir : str
        Directory holding consistent-trees ``tree_*.dat`` files.
    memo_dir : str
        Directory for memoized block headers. Empty disables memoization.
    snap_min, snap_max : int, optional
        Inclusive snapshot range kept in tree output.
    snap_offset : int
        Added to tree ``Snap_num`` values to give snapshot indices.
    """

    snapshot_type: str = 'gadget-hdf5'
    snapshot_format: str = ''
    block_min: int = 0
    block_max: int = 0
    endianness: str = 'little'
    position_units: float = 1.0
    mass_units: float = 1.0
    particle_type: int = 1
    tree_dir: str = ''
    memo_dir: str = ''
    snap_min: Optional[int] = None
    snap_max: Optional[int] = None
    snap_offset: int = 0

    def validate(self) -> None:
        for name in ('snapshot_format', 'tree_dir', 'memo_dir'):
            _require_str(name, getattr(self, name))
        for name in ('block_min', 'block_max', 'particle_type', 'snap_offset'):
            _require_int(name, getattr(self, name))
        for name in ('snap_min', 'snap_max'):
            if getattr(self, name) is not None:
                _require_int(name, getattr(self, name))
        _require_number('position_units', self.position_units)
        _require_number('mass_units', self.mass_units)

        if self.snapshot_type not in SNAPSHOT_TYPES:
            raise ConfigValidationError(
                f"Unknown snapshot_type '{self.snapshot_type}'. "
                f"Choose from: {', '.join(SNAPSHOT_TYPES)}"
            )
        if self.endianness not in ENDIANNESS:
            raise ConfigValidationError(
                f"Unknown endianness '{self.endianness}'. "
                f"Choose from: {', '.join(ENDIANNESS)}"
            )
        if self.block_min < 0 or self.block_max < self.block_min:
            raise ConfigValidationError(
                f"Invalid block range [{self.block_min}, {self.block_max}]."
            )
        if not self.position_units > 0 or not self.mass_units > 0:
            raise ConfigValidationError("'position_units' and 'mass_units' must be positive.")
        if (
            self.snap_min is not None
            and self.snap_max is not None
            and self.snap_min > self.snap_max
        ):
            raise ConfigValidationError(
                f"'snap_min' ({self.snap_min}) is larger than 'snap_max' ({self.snap_max})."
            )

    def memo_fingerprint(self) -> str:
        """
        Hash of the variables that change the contents of memoized headers.

        Variables such as ``tree_dir`` or the snapshot range do not affect
        cached block headers and are left out so that changing them does
        not flush the memo directory.
        """
        relevant = {
            'memo_format_version': MEMO_FORMAT_VERSION,
            'snapshot_type': self.snapshot_type,
            'snapshot_format': self.snapshot_format,
            'block_min': self.block_min,
            'block_max': self.block_max,
            'endianness': self.endianness,
            'position_units': self.position_units,
            'mass_units': self.mass_units,
            'particle_type': self.particle_type,
        }
        encoded = json.dumps(relevant, sort_keys=True).encode('utf-8')
        return hashlib.sha256(encoded).hexdigest()
