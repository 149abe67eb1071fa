"""
Logging Setup Module
====================

Utilities for configuring logging across the pipeline.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from .parallel import get_rank, get_size


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    include_rank: bool = False,
) -> logging.Logger:
    """
    Set up logging for the shellfish pipeline.

    Log records go to stderr so that stdout carries only the output
    catalog and can be piped into the next stage.

    Parameters
    ----------
    level : int or str
        Logging level (e.g., logging.INFO, 'DEBUG').
    log_file : str or Path, optional
        Path to log file. With MPI only rank 0 writes it.
    include_rank : bool
        If True, include the MPI rank in log messages.

    Returns
    -------
    logger : Logger
        Configured package logger.

    Examples
    --------
    >>> setup_logging(level='DEBUG', log_file='prof.log')
    >>> logger = logging.getLogger(__name__)
    >>> logger.info("Starting profiles...")
    """
    if isinstance(level, str):
        level = level.upper()

    logger = logging.getLogger('shellfish')
    logger.setLevel(level)
    logger.handlers.clear()

    rank = get_rank()
    if include_rank:
        format_string = (
            f'%(asctime)s [Rank {rank}/{get_size()}] %(levelname)s - %(name)s - %(message)s'
        )
    else:
        format_string = '%(asctime)s %(levelname)s - %(name)s - %(message)s'

    formatter = logging.Formatter(format_string, datefmt='%Y-%m-%d %H:%M:%S')

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is not None and rank == 0:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
