"""
Error types raised by the editing pipeline.

The editor session turns every one of these into a status message; the API
layer maps them onto HTTP status codes.
"""


class ArchitectError(Exception):
    """Base class for pipeline failures."""


class DocumentLoadError(ArchitectError):
    """Upload is unreadable or not a PDF."""


class NoDocumentError(ArchitectError):
    """An operation needs a loaded document and there is none."""


class RegionError(ArchitectError):
    """Cropping or reading the selected region failed."""


class SynthesisError(ArchitectError):
    """The generative model could not be reached or answered with an error."""


class SessionBusyError(ArchitectError):
    """Another command/apply cycle is still in flight."""
