"""
I/O Helpers Module
==================

Small HDF5 and YAML helpers used by the configuration layer and the
header memo directory.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import h5py
import numpy as np
import yaml

logger = logging.getLogger(__name__)


def save_hdf5(
    filepath: Union[str, Path],
    data: Dict[str, np.ndarray],
    attrs: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Save a flat dictionary of arrays to an HDF5 file.

    Parameters
    ----------
    filepath : str or Path
        Output file path. Parent directories are created.
    data : dict
        Dataset name to array.
    attrs : dict, optional
        File-level scalar or string attributes.

    Returns
    -------
    filepath : Path
        Path to saved file.

    Examples
    --------
    >>> save_hdf5('headers_0100.h5', {'origin': origins}, attrs={'snap': 100})
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with h5py.File(filepath, 'w') as f:
        f.attrs['created'] = datetime.now().isoformat()

        if attrs:
            for key, value in attrs.items():
                f.attrs[key] = value

        for key, value in data.items():
            value = np.asarray(value)
            if value.dtype.kind == 'U':
                # h5py cannot store numpy unicode arrays directly
                value = value.astype(h5py.string_dtype())
            f.create_dataset(key, data=value)

    logger.debug(f"Saved HDF5: {filepath}")
    return filepath


def load_hdf5(
    filepath: Union[str, Path],
    keys: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Load datasets and file attributes from an HDF5 file.

    Parameters
    ----------
    filepath : str or Path
        Input file path.
    keys : list, optional
        Specific datasets to load. If None, load all.

    Returns
    -------
    data : dict
        Attributes and datasets keyed by name. String datasets are
        decoded to Python ``str``.
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    data = {}

    with h5py.File(filepath, 'r') as f:
        for key in f.attrs:
            data[key] = f.attrs[key]

        for key in (keys if keys else list(f.keys())):
            if key not in f:
                continue
            dset = f[key]
            if h5py.check_string_dtype(dset.dtype) is not None:
                data[key] = np.array(dset.asstr()[:])
            else:
                data[key] = dset[:]

    return data


def save_yaml(
    filepath: Union[str, Path],
    data: Dict[str, Any],
) -> Path:
    """
    Save data to YAML file.

    Parameters
    ----------
    filepath : str or Path
        Output file path.
    data : dict
        Data to save.

    Returns
    -------
    filepath : Path
        Path to saved file.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    return filepath


def load_yaml(filepath: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML mapping.

    An empty file loads as an empty dict.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    with open(filepath, 'r') as f:
        return yaml.safe_load(f) or {}
