"""
Error Taxonomy for PuppetDB Service Discovery

Every error raised by the synchronization core derives from PuppetDBSyncError.
Only ConfigurationError is fatal, and only at startup; the other errors abort
the current poll cycle (or a single target) and are retried by the next cycle.
"""


class PuppetDBSyncError(Exception):
    """Base class for all synchronization errors."""
    pass


class ConfigurationError(PuppetDBSyncError):
    """Raised when configuration is invalid or a client cannot be set up."""
    pass


class TransportError(PuppetDBSyncError):
    """Raised on connection, TLS or HTTP status failures."""
    pass


class DecodeError(PuppetDBSyncError):
    """Raised when a PuppetDB response does not match the resource schema."""
    pass


class SerializationError(PuppetDBSyncError):
    """Raised when a snapshot cannot be rendered to YAML."""
    pass


class PersistenceError(PuppetDBSyncError):
    """Raised when an artifact cannot be written or deleted."""
    pass


class ResolutionError(PuppetDBSyncError):
    """Raised when a target address has no IPv4 address."""
    pass
