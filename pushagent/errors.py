"""Error taxonomy for the push agent."""
from typing import Optional


class AgentError(Exception):
    """Base class for all agent errors."""
    fatal = True
    exit_code = 1


class MalformedArgument(AgentError, ValueError):
    """The agent argument string does not match the expected grammar."""

    def __init__(self, argument: str, reason: Optional[str] = None):
        self.argument = argument
        self.reason = reason
        message = f"Malformed arguments - {argument}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class MalformedIdentity(AgentError):
    """Process identity string lacks the pid@host separator."""

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"Malformed process identity '{identity}', expected pid@host")


class DeliveryFailure(AgentError):
    """A push to the gateway could not be completed. Recovered by retrying."""
    fatal = False

    def __init__(self, address: str, cause: Exception):
        self.address = address
        self.cause = cause
        super().__init__(f"{cause} PushGateway: {address}")


class SchedulingInterrupted(AgentError):
    """The scheduler sleep was interrupted."""


class SetupFailure(AgentError):
    """Collector registration or gateway construction failed."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Agent setup failed: {cause}")
