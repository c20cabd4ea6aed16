"""
Document Service — document records attached to tenants and/or projects.

Non-elevated users reach a document through its project (ownership or
membership of the project's tenant) or through its own tenant.
"""

import logging

from sqlalchemy import false, or_

from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.models import db
from app.models.auth import Tenant
from app.models.document import Document
from app.models.project import Project
from app.services.permission_service import (
    CurrentUser,
    can_access_entity,
    is_tenant_member,
    member_tenant_ids,
)
from app.utils.helpers import paginate

logger = logging.getLogger(__name__)

DOCUMENT_FIELDS = ("description", "content", "url")

DOCUMENT_SORT_FIELDS = {
    "name": Document.name,
    "created_at": Document.created_at,
    "updated_at": Document.updated_at,
}


def can_access_document(actor: CurrentUser, document: Document) -> bool:
    if actor.is_elevated:
        return True
    if document.project is not None:
        return can_access_entity(actor, document.project.owner_id, document.project.tenant_id)
    return is_tenant_member(actor, document.tenant_id)


def _resolve_refs(actor: CurrentUser, data: dict, document: Document) -> None:
    if "tenant_id" in data:
        tenant_id = data["tenant_id"]
        if tenant_id in (None, ""):
            document.tenant_id = None
        else:
            tenant = db.session.get(Tenant, tenant_id)
            if tenant is None:
                raise BadRequestError("Tenant not found")
            if not actor.is_elevated and not is_tenant_member(actor, tenant.id):
                raise ForbiddenError("Access denied to this tenant")
            document.tenant_id = tenant.id
    if "project_id" in data:
        project_id = data["project_id"]
        if project_id in (None, ""):
            document.project_id = None
        else:
            project = db.session.get(Project, project_id)
            if project is None:
                raise BadRequestError("Project not found")
            if not can_access_entity(actor, project.owner_id, project.tenant_id):
                raise ForbiddenError("Access denied to this project")
            document.project_id = project.id


def create_document(actor: CurrentUser, data: dict) -> Document:
    name = (data.get("name") or "").strip()
    if not name:
        raise BadRequestError("name is required")
    document = Document(name=name)
    _resolve_refs(actor, data, document)
    for field in DOCUMENT_FIELDS:
        if field in data:
            setattr(document, field, data[field])
    db.session.add(document)
    db.session.commit()
    logger.info("Document %s created by %s", document.id, actor.id)
    return document


def list_documents(actor: CurrentUser, filters: dict, page: int, limit: int):
    q = Document.query.outerjoin(Project, Project.id == Document.project_id)
    search = filters.get("q")
    if search:
        like = f"%{search}%"
        q = q.outerjoin(Tenant, Tenant.id == Document.tenant_id).filter(or_(
            Document.name.ilike(like),
            Document.description.ilike(like),
            Document.content.ilike(like),
            Tenant.name.ilike(like),
            Project.name.ilike(like),
        ))
    if filters.get("tenant_id"):
        q = q.filter(Document.tenant_id == filters["tenant_id"])
    if filters.get("project_id"):
        q = q.filter(Document.project_id == filters["project_id"])

    if not actor.is_elevated:
        tenant_ids = sorted(member_tenant_ids(actor))
        conditions = [Project.owner_id == actor.id]
        if tenant_ids:
            conditions.append(Project.tenant_id.in_(tenant_ids))
            conditions.append(Document.project_id.is_(None) & Document.tenant_id.in_(tenant_ids))
        q = q.filter(or_(*conditions) if conditions else false())

    column = DOCUMENT_SORT_FIELDS.get(filters.get("sort_by") or "created_at", Document.created_at)
    q = q.order_by(column.asc() if filters.get("sort_order") == "asc" else column.desc(), Document.id)
    return paginate(q, page, limit)


def get_document(actor: CurrentUser, document_id: int) -> Document:
    document = db.session.get(Document, document_id)
    if document is None:
        raise NotFoundError("Document not found")
    if not can_access_document(actor, document):
        logger.warning("User %s denied access to document %s", actor.id, document_id,
                       extra={"event_type": "access_denied"})
        raise ForbiddenError("Access denied to this document")
    return document


def update_document(actor: CurrentUser, document_id: int, data: dict) -> Document:
    document = get_document(actor, document_id)
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise BadRequestError("name cannot be empty")
        document.name = name
    _resolve_refs(actor, data, document)
    for field in DOCUMENT_FIELDS:
        if field in data:
            setattr(document, field, data[field])
    db.session.commit()
    logger.info("Document %s updated by %s", document.id, actor.id)
    return document


def delete_document(actor: CurrentUser, document_id: int) -> None:
    document = get_document(actor, document_id)
    db.session.delete(document)
    db.session.commit()
    logger.info("Document %s deleted by %s", document_id, actor.id)
