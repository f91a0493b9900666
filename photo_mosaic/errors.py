"""Exception taxonomy used inside the engine.

None of these cross :func:`photo_mosaic.engine.generate_mosaic`; the
orchestrator turns them into a result-level error message.
"""

from __future__ import annotations


class MosaicError(Exception):
    """Base class for expected engine failures."""


class ConfigurationError(MosaicError):
    """The project is missing a required setting or file."""


class NoUsablePhotosError(MosaicError):
    """Every candidate photo was skipped or failed to load."""


class GenerationCancelled(MosaicError):
    """The caller's cancellation check fired."""
