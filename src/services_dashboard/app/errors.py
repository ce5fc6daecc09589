# app/errors.py
"""Failures the service gateway recovers into a ``ServiceResult``."""


class ServiceError(Exception):
    """Base class for every service operation failure."""

    kind = "error"


class ServiceValidationError(ServiceError):
    """Form input failed to parse. ``errors`` maps field name to message."""

    kind = "validation"

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))


class ServiceNotFoundError(ServiceError):
    kind = "not_found"

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"Service '{service_id}' not found.")


class ServicePersistenceError(ServiceError):
    """The database rejected or failed an operation."""

    kind = "persistence"
