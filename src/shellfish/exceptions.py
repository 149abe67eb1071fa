"""
Exceptions Module
=================

Error types raised by the profile and tree pipelines.

Every error aborts the whole run: a missing snapshot or block would
otherwise produce a profile that looks valid but is incomplete.
"""

from __future__ import annotations


class ShellfishError(Exception):
    """Base class for all pipeline errors."""


class MalformedInputError(ShellfishError):
    """Input catalog is empty, ragged, or not numeric."""


class ConfigValidationError(ShellfishError):
    """A configuration variable has an invalid value."""


class SnapshotHeaderError(ShellfishError):
    """Block metadata could not be obtained for a snapshot."""


class BlockReadError(ShellfishError):
    """Particle data could not be read for a block."""


class TreeDiscoveryError(ShellfishError):
    """Merger-tree files could not be listed or none were found."""
