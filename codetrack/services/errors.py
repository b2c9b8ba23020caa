"""Service error taxonomy shared by the scan, reconcile and task services."""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors raised by codetrack services."""

    pass


class NotFoundError(ServiceError, LookupError):
    """Project, envelope, annotation or task missing (or not visible to the caller)."""

    def __init__(self, resource: str, identifier: object) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class UnauthorizedError(ServiceError, PermissionError):
    """Caller does not own the entity it is trying to mutate."""

    pass


class ExternalToolFailure(ServiceError, RuntimeError):
    """Fetch, extract or diff step failed, including non-zero exits and timeouts."""

    pass


class PersistenceFailure(ServiceError, RuntimeError):
    """A store write that an invariant depends on did not commit."""

    pass


class ValidationFailure(ServiceError, ValueError):
    """Malformed configuration, decision payload or tool output."""

    pass
