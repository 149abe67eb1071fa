"""
Command Line Interface
======================

Pipeline stages read a text catalog from stdin (or ``--input``) and write
a text catalog to stdout (or ``--output``), so they can be chained:

    shellfish tree --config sim.yaml < ids.txt | ... | shellfish prof --config sim.yaml

The global simulation config is given with ``--config`` or the
``$SHELLFISH_GLOBAL_CONFIG`` environment variable.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional, Sequence

import numpy as np

from . import __version__
from .analysis.history import (
    filter_snapshot_range,
    frame_histories,
    halo_histories,
    to_pairs,
)
from .analysis.profiles import compute_profiles
from .config import GlobalConfig, ProfConfig
from .data.catalog import HaloCatalog, comment_string, format_cols, parse_cols
from .data.header_cache import HeaderCache
from .data.snapshots import get_reader
from .data.trees import TreeForest, find_tree_files
from .exceptions import ShellfishError
from .utils.logging_setup import setup_logging
from .utils.parallel import get_mpi_comm, get_size, is_root

logger = logging.getLogger(__name__)

GLOBAL_CONFIG_ENV = 'SHELLFISH_GLOBAL_CONFIG'


def build_parser() -> argparse.ArgumentParser:
    """Argument parser with one subcommand per pipeline stage."""
    parser = argparse.ArgumentParser(
        prog='shellfish',
        description="Halo density profiles and merger-tree histories",
    )
    subparsers = parser.add_subparsers(dest='mode', required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '--config',
        type=str,
        default=None,
        help=f'Global simulation config (YAML). Defaults to ${GLOBAL_CONFIG_ENV}',
    )
    common.add_argument(
        '--input',
        type=str,
        default=None,
        help='Input catalog (default: stdin)',
    )
    common.add_argument(
        '--output',
        type=str,
        default=None,
        help='Output catalog (default: stdout)',
    )
    common.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        help='Logging level',
    )
    common.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Also write logs to this file',
    )

    prof = subparsers.add_parser(
        'prof',
        parents=[common],
        help='Radial density profiles of ID Snapshot X Y Z R200m rows',
    )
    prof.add_argument(
        'mode_config',
        nargs='?',
        default=None,
        help='Profile config (YAML) with bins, r_max_mult, r_min_mult',
    )
    prof.add_argument('--bins', type=int, default=None, help='Number of radial bins')
    prof.add_argument('--r-max-mult', type=float, default=None, help='Maximum radius in R/R200m')
    prof.add_argument('--r-min-mult', type=float, default=None, help='Minimum radius in R/R200m')

    tree = subparsers.add_parser(
        'tree',
        parents=[common],
        help='Main-progenitor histories of ID Snapshot rows',
    )
    tree.add_argument('--snap-min', type=int, default=None, help='Earliest snapshot kept')
    tree.add_argument('--snap-max', type=int, default=None, help='Latest snapshot kept')

    subparsers.add_parser('version', help='Print the version and exit')

    return parser


def _read_lines(path: Optional[str]) -> List[str]:
    if path is None:
        return sys.stdin.read().splitlines()
    with open(path, 'r') as f:
        return f.read().splitlines()


def _write_lines(lines: Sequence[str], path: Optional[str]) -> None:
    text = '\n'.join(lines) + '\n'
    if path is None:
        sys.stdout.write(text)
        sys.stdout.flush()
    else:
        with open(path, 'w') as f:
            f.write(text)


def _global_config(args: argparse.Namespace) -> GlobalConfig:
    path = args.config or os.environ.get(GLOBAL_CONFIG_ENV)
    config = GlobalConfig.from_yaml(path)
    return config.with_overrides(
        snap_min=getattr(args, 'snap_min', None),
        snap_max=getattr(args, 'snap_max', None),
    )


def run_prof(args: argparse.Namespace) -> Optional[List[str]]:
    """
    Profile mode.

    Returns the output catalog lines, or None on MPI ranks other than 0.
    """
    g_config = _global_config(args)
    config = ProfConfig.from_yaml(args.mode_config).with_overrides(
        bins=args.bins,
        r_max_mult=args.r_max_mult,
        r_min_mult=args.r_min_mult,
    )

    catalog = HaloCatalog.from_lines(_read_lines(args.input))
    logger.info(f"Read {catalog.n_halos} halos")

    reader = get_reader(g_config)
    comm = get_mpi_comm() if get_size() > 1 else None
    headers = HeaderCache(g_config, reader, comm=comm)

    profiles = compute_profiles(catalog, headers, reader, config, comm=comm)
    if profiles is None:
        return None

    bins = config.bins
    radii = np.full((catalog.n_halos, bins), -1.0)
    density = np.full((catalog.n_halos, bins), -1.0)
    for i, profile in enumerate(profiles):
        if profile is not None:
            radii[i] = profile.radii
            density[i] = profile.density

    lines = format_cols(
        [catalog.ids, catalog.snapshots],
        list(radii.T) + list(density.T),
    )
    header = comment_string(
        ['ID', 'Snapshot', 'R [cMpc/h]', 'Rho [h^2 Msun/cMpc^3]'],
        [1, 1, bins, bins],
    )
    return [header] + lines


def run_tree(args: argparse.Namespace) -> List[str]:
    """Tree mode."""
    g_config = _global_config(args)
    header = comment_string(['ID', 'Snapshot'])

    int_cols, _ = parse_cols(_read_lines(args.input), [0, 1], [])
    seeds = list(zip(int_cols[0].tolist(), int_cols[1].tolist()))
    if not seeds:
        logger.warning("No input IDs; writing an empty catalog")
        return [header]

    forest = TreeForest.from_files(
        find_tree_files(g_config.tree_dir), snap_offset=g_config.snap_offset,
    )
    logger.info(f"Loaded {forest.n_nodes} tree nodes for {len(seeds)} seeds")

    stream = frame_histories(halo_histories(seeds, forest))
    stream = filter_snapshot_range(stream, g_config.snap_min, g_config.snap_max)
    ids, snaps = to_pairs(stream)

    return [header] + format_cols([ids, snaps])


MODES = {
    'prof': run_prof,
    'tree': run_tree,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point of the ``shellfish`` command."""
    args = build_parser().parse_args(argv)

    if args.mode == 'version':
        print(f"Shellfish version {__version__}")
        return 0

    setup_logging(level=args.log_level, log_file=args.log_file, include_rank=get_size() > 1)

    try:
        lines = MODES[args.mode](args)
    except ShellfishError as e:
        logger.error(f"Error running mode {args.mode}: {e}")
        print("Shellfish terminating.", file=sys.stderr)
        if get_size() > 1:
            # Other ranks may be blocked in a collective call
            get_mpi_comm().Abort(1)
        return 1

    if lines is not None and is_root():
        _write_lines(lines, args.output)
    return 0


if __name__ == '__main__':
    sys.exit(main())
