"""Error taxonomy.

Request-scoped errors (QuoteValidationError, StoreError) end a single
request through the exception handlers in qotd.main. Startup errors
(StartupError subclasses) propagate out of QuoteServer.start() and abort
the process.
"""


class QotdError(Exception):
    """Base class for all service errors."""


class QuoteValidationError(QotdError):
    """The request body is not an acceptable quote."""


# ─── Storage ────────────────────────────────────────────

class StoreError(QotdError):
    """A storage operation failed."""


class StoreConnectionError(StoreError):
    """No connection could be acquired from the store."""


class StoreQueryError(StoreError):
    """A statement failed on an acquired connection."""


# ─── Startup ────────────────────────────────────────────

class StartupError(QotdError):
    """Fatal failure while bringing the service up."""


class SchemaBootstrapError(StartupError):
    """The schema could not be created."""


class SeedImportError(StartupError):
    """The seed data could not be loaded."""


class ListenerBindError(StartupError):
    """The HTTP listener could not bind its address."""
