"""
Error types raised by the telemetry core and its collaborators
"""


class CallhomeError(Exception):
    """Base class for all service errors"""


class InvalidInputError(CallhomeError):
    """Malformed IP address, page parameters or repository selector"""


class UnauthorizedError(CallhomeError):
    """Bearer token missing or rejected"""


class StorageError(CallhomeError):
    """Repository backend failed (connectivity, constraint, API error)"""


class StartupError(CallhomeError):
    """A required resource could not be initialized"""
