# app/gateway.py
"""Validated create/read/update/delete over the services table.

Every operation recovers its failures into a ``ServiceResult``; nothing
escapes as an exception. Successful mutations notify the invalidation
handle so cached listings are recomputed.
"""
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, schemas
from ..cache import SERVICES_PAGE_TAG, SERVICES_TAG, InvalidationNotifier, TaggedCache
from .errors import ServiceError, ServiceNotFoundError, ServicePersistenceError, ServiceValidationError

logger = logging.getLogger(__name__)


class ServiceGateway:
    def __init__(self, db: Session, notifier: InvalidationNotifier, cache: TaggedCache | None = None):
        self.db = db
        self.notifier = notifier
        self.cache = cache

    # --- Read ---

    def list_services(
        self,
        search: str | None = None,
        status: schemas.StatusFilter = schemas.StatusFilter.all,
    ) -> list[schemas.Service]:
        """Services matching the filter, newest first. Empty on database failure."""
        if search is not None and not search.strip():
            search = None

        def load() -> list[schemas.Service]:
            rows = crud.get_services(self.db, search=search, status=status)
            return [schemas.Service.model_validate(row) for row in rows]

        try:
            if self.cache is None:
                return load()
            return self.cache.fetch(
                ("services", search, status.value),
                load,
                tags=(SERVICES_TAG, SERVICES_PAGE_TAG),
            )
        except SQLAlchemyError:
            logger.exception(f"Error listing services (search={search!r}, status={status.value})")
            self.db.rollback()
            return []

    def get_service(self, service_id: str) -> schemas.ServiceResult:
        try:
            db_service = crud.get_service(self.db, service_id)
        except ServiceNotFoundError as e:
            logger.warning(str(e))
            return self._failure(e)
        except SQLAlchemyError:
            return self._persistence_failure("get", service_id)
        return schemas.ServiceResult.ok(schemas.Service.model_validate(db_service))

    # --- Write ---

    def create_service(self, form: Mapping[str, Any]) -> schemas.ServiceResult:
        try:
            data = schemas.parse_service_form(form)
        except ServiceValidationError as e:
            logger.warning(f"Rejected service create: {e}")
            return self._failure(e)

        try:
            db_service = crud.create_service(self.db, data)
        except SQLAlchemyError:
            return self._persistence_failure("create")

        logger.info(f"Service '{db_service.name}' created with ID {db_service.id}.")
        self.notifier.invalidate(SERVICES_TAG)
        return schemas.ServiceResult.ok(schemas.Service.model_validate(db_service))

    def update_service(self, service_id: str, form: Mapping[str, Any]) -> schemas.ServiceResult:
        try:
            data = schemas.parse_service_form(form)
        except ServiceValidationError as e:
            logger.warning(f"Rejected service update for {service_id}: {e}")
            return self._failure(e)

        try:
            db_service = crud.update_service(self.db, service_id, data)
        except ServiceNotFoundError as e:
            logger.warning(f"Update of missing service: {service_id}")
            return self._failure(e)
        except SQLAlchemyError:
            return self._persistence_failure("update", service_id)

        logger.info(f"Service {db_service.id} updated.")
        self.notifier.invalidate(SERVICES_TAG)
        return schemas.ServiceResult.ok(schemas.Service.model_validate(db_service))

    def delete_service(self, service_id: str) -> schemas.ServiceResult:
        try:
            crud.delete_service(self.db, service_id)
        except ServiceNotFoundError as e:
            logger.warning(f"Delete of missing service: {service_id}")
            return self._failure(e)
        except SQLAlchemyError:
            return self._persistence_failure("delete", service_id)

        logger.info(f"Service {service_id} deleted.")
        self.notifier.invalidate(SERVICES_TAG, SERVICES_PAGE_TAG)
        return schemas.ServiceResult.ok()

    # --- Helpers ---

    @staticmethod
    def _failure(error: ServiceError) -> schemas.ServiceResult:
        field_errors = error.errors if isinstance(error, ServiceValidationError) else None
        return schemas.ServiceResult.fail(error.kind, str(error), field_errors)

    def _persistence_failure(self, operation: str, service_id: str | None = None) -> schemas.ServiceResult:
        """Log the database error in full, give the caller only a generic message."""
        target = f" {service_id}" if service_id else ""
        logger.exception(f"Error during service {operation}{target}")
        self.db.rollback()
        return self._failure(ServicePersistenceError(f"Failed to {operation} service"))
