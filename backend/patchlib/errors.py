"""Error types raised by the library engine."""


class PatchLibraryError(Exception):
    """Base class for library engine errors."""


class StructuralError(PatchLibraryError):
    """A required directory or file is missing."""


class DuplicateError(PatchLibraryError):
    """A fingerprint collides with an existing library, patch or sequence."""


class IntegrityError(PatchLibraryError):
    """Slot counts or stored content violate the library invariants."""


class NotFoundError(PatchLibraryError):
    """A requested record does not exist."""
