# app/crud.py
from datetime import timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session
from . import models, schemas
from .errors import ServiceNotFoundError

def build_service_query(
    db: Session,
    search: str | None = None,
    status: schemas.StatusFilter = schemas.StatusFilter.all,
) -> Query:
    """Builds the listing query for a search term and status filter.

    Status and text constraints are ANDed; the text constraint matches
    name OR description, case-insensitively. Newest first, id breaks ties.
    """
    query = db.query(models.Service)

    if status is not schemas.StatusFilter.all:
        query = query.filter(models.Service.is_active == (status is schemas.StatusFilter.active))

    if search and search.strip():
        # autoescape so '%' and '_' in the term match literally
        query = query.filter(
            or_(
                models.Service.name.icontains(search, autoescape=True),
                models.Service.description.icontains(search, autoescape=True),
            )
        )

    return query.order_by(models.Service.created_at.desc(), models.Service.id.desc())

def get_services(
    db: Session,
    search: str | None = None,
    status: schemas.StatusFilter = schemas.StatusFilter.all,
) -> list[models.Service]:
    """Fetches every service matching the filter, newest first."""
    return build_service_query(db, search=search, status=status).all()

def get_service(db: Session, service_id: str) -> models.Service:
    """Fetches a service by id. Raises ServiceNotFoundError if absent."""
    db_service = db.get(models.Service, service_id)
    if db_service is None:
        raise ServiceNotFoundError(service_id)
    return db_service

def create_service(db: Session, service: schemas.ServiceForm) -> models.Service:
    """Creates a new service entry in the database."""
    now = models.utcnow()
    db_service = models.Service(
        id=models.new_service_id(),
        name=service.name,
        description=service.description,
        price=service.price,
        is_active=service.is_active,
        is_featured=service.is_featured,
        created_at=now,
        updated_at=now,
    )
    db.add(db_service)
    db.commit()
    db.refresh(db_service)
    return db_service

def update_service(db: Session, service_id: str, service: schemas.ServiceForm) -> models.Service:
    """Replaces the mutable fields of an existing service."""
    db_service = get_service(db, service_id)

    now = models.utcnow()
    if now <= db_service.updated_at:
        # clock did not move since the last write; keep updated_at strictly increasing
        now = db_service.updated_at + timedelta(microseconds=1)

    db_service.name = service.name
    db_service.description = service.description
    db_service.price = service.price
    db_service.is_active = service.is_active
    db_service.is_featured = service.is_featured
    db_service.updated_at = now
    db.commit()
    db.refresh(db_service)
    return db_service

def delete_service(db: Session, service_id: str) -> None:
    """Deletes a service. Raises ServiceNotFoundError if absent."""
    db_service = get_service(db, service_id)
    db.delete(db_service)
    db.commit()
