"""
Domain exceptions for Gatekeeper.

Exceptions are reserved for misuse of the API surface and for failures of
external collaborators. Expected validation failures are returned as
structured results, never raised.
All application errors should inherit from GatekeeperError.
"""


class GatekeeperError(Exception):
    """Base class for all Gatekeeper exceptions."""

    def __init__(self, message: str, context: dict = None):
        super().__init__(message)
        self.context = context or {}


class ConfigurationError(GatekeeperError):
    """Raised when a component is configured or called incorrectly."""

    pass


class HookRegistrationError(ConfigurationError):
    """Raised when a hook is registered with a non-callable handler or bad priority."""

    pass


class UnknownPhaseError(ConfigurationError):
    """Raised when a workflow phase name is not part of the phase sequence."""

    pass


class ExecutorError(GatekeeperError):
    """Raised when the external task executor fails."""

    pass


class ExecutorTimeoutError(ExecutorError):
    """Raised when the external task executor exceeds its time bound."""

    pass


class EngineShutdownError(GatekeeperError):
    """Raised when work is submitted to an engine that has been shut down."""

    pass


class CircuitOpenError(GatekeeperError):
    """Raised when the engine circuit breaker is open."""

    pass


class CapacityExceededError(GatekeeperError):
    """Raised when the engine is already running its maximum of concurrent operations."""

    pass
