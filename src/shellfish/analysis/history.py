"""
Halo History Module
===================

Main-progenitor histories of seed halos, framed into a single stream.

Internally a stream is a list of `Entry` and `Separator` items. Only at
the text boundary is a `Separator` written as the ``-1 -1`` row that
downstream stages use to split the stream back into per-halo histories.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple, Union

from ..data.catalog import SENTINEL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entry:
    """One halo at one snapshot."""

    id: int
    snapshot: int


@dataclass(frozen=True)
class Separator:
    """Boundary between the histories of two seeds."""


StreamItem = Union[Entry, Separator]


class BranchSource(Protocol):
    def branch(self, halo_id: int, snap: int) -> List[Tuple[int, int]]:
        ...


def halo_histories(
    seeds: Sequence[Tuple[int, int]],
    forest: BranchSource,
) -> List[List[Entry]]:
    """
    Main-progenitor branch of every seed, in seed order.

    Parameters
    ----------
    seeds : sequence of (int, int)
        ``(halo_id, snapshot)`` pairs.
    forest : BranchSource
        Anything with a ``branch(halo_id, snap)`` query, e.g. a `TreeForest`.

    Returns
    -------
    histories : list of list of Entry
        One history per seed. Seeds missing from the trees get an empty
        history so positions stay aligned with `seeds`.
    """
    histories = []
    n_missing = 0

    for halo_id, snap in seeds:
        branch = forest.branch(halo_id, snap)
        if not branch:
            n_missing += 1
        histories.append([Entry(int(i), int(s)) for i, s in branch])

    if n_missing:
        logger.warning(f"{n_missing} of {len(seeds)} seed halos were not found in any tree")

    return histories


def frame_histories(histories: Sequence[Sequence[Entry]]) -> List[StreamItem]:
    """
    Concatenate histories with a `Separator` between consecutive ones.

    There is never a leading or trailing separator. Empty histories still
    get their separators.

    Examples
    --------
    >>> frame_histories([[Entry(5, 10), Entry(3, 9)], [Entry(7, 10)]])
    [Entry(id=5, snapshot=10), Entry(id=3, snapshot=9), Separator(), Entry(id=7, snapshot=10)]
    """
    stream: List[StreamItem] = []
    for i, history in enumerate(histories):
        if i > 0:
            stream.append(Separator())
        stream.extend(history)
    return stream


def filter_snapshot_range(
    stream: Iterable[StreamItem],
    snap_min: Optional[int] = None,
    snap_max: Optional[int] = None,
) -> List[StreamItem]:
    """
    Keep entries with ``snap_min <= snapshot <= snap_max``.

    Separators are always kept so the framing survives filtering. A bound
    of None is unbounded.
    """
    out: List[StreamItem] = []
    for item in stream:
        if isinstance(item, Entry):
            if snap_min is not None and item.snapshot < snap_min:
                continue
            if snap_max is not None and item.snapshot > snap_max:
                continue
        out.append(item)
    return out


def to_pairs(stream: Iterable[StreamItem]) -> Tuple[List[int], List[int]]:
    """Serialize a stream into ID and snapshot columns, separators as -1."""
    ids, snaps = [], []
    for item in stream:
        if isinstance(item, Separator):
            ids.append(SENTINEL)
            snaps.append(SENTINEL)
        else:
            ids.append(item.id)
            snaps.append(item.snapshot)
    return ids, snaps


def from_pairs(ids: Sequence[int], snaps: Sequence[int]) -> List[StreamItem]:
    """Parse ID and snapshot columns back into a stream."""
    return [
        Separator() if (i == SENTINEL and s == SENTINEL) else Entry(int(i), int(s))
        for i, s in zip(ids, snaps)
    ]


def split_histories(stream: Iterable[StreamItem]) -> List[List[Entry]]:
    """
    Inverse of `frame_histories`.

    An empty stream gives no histories, matching an empty seed list.
    """
    items = list(stream)
    if not items:
        return []

    histories: List[List[Entry]] = [[]]
    for item in items:
        if isinstance(item, Separator):
            histories.append([])
        else:
            histories[-1].append(item)
    return histories
