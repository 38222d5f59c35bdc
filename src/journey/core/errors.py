from __future__ import annotations


class JourneyError(Exception):
    """Base class for every error raised by journey services."""


class ValidationError(JourneyError):
    """Missing or invalid input. Nothing was mutated, nothing was emitted."""


class PreconditionError(JourneyError):
    """Operation called out of journey order. Nothing was mutated, nothing was emitted."""


class SinkUnavailable(JourneyError):
    """Telemetry could not be handed to the backend."""


class StorageUnavailable(JourneyError):
    """The persistent key-value store could not be read or written."""
