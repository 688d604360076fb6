"""
Official document registry.

Operators publish PDF documents (statutes, minutes, circulars) grouped in
categories. Members browse the active ones. Documents are never deleted,
only deactivated. A category can only be deleted while it holds no
document, active or not.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from adhesion.core.audit import RequestContext, record_audit
from adhesion.core.errors import (
    CategoryAlreadyExists,
    CategoryHasDocuments,
    CategoryNotFound,
    DocumentNotFound,
    InvalidCategory,
    NoChangesDetected,
)
from adhesion.models.document import DocumentCategory, OfficialDocument
from adhesion.services.member import get_operator

logger = logging.getLogger(__name__)

TOP_CATEGORIES_LIMIT = 5


def _document_count(db: Session, category_id: UUID, active_only: bool = False) -> int:
    query = db.query(func.count(OfficialDocument.id)).filter(OfficialDocument.category_id == category_id)
    if active_only:
        query = query.filter(OfficialDocument.is_active == True)
    return query.scalar() or 0


def _ensure_unique_name(db: Session, name: str, exclude_id: Optional[UUID] = None) -> None:
    query = db.query(DocumentCategory.id).filter(func.lower(DocumentCategory.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(DocumentCategory.id != exclude_id)
    if query.first() is not None:
        raise CategoryAlreadyExists(context={"name": name})


def get_category(db: Session, category_id: UUID, lock: bool = False) -> DocumentCategory:
    query = db.query(DocumentCategory).filter(DocumentCategory.id == category_id)
    if lock:
        query = query.with_for_update().populate_existing()
    category = query.first()
    if not category:
        raise CategoryNotFound(context={"category_id": str(category_id)})
    return category


def create_category(
    db: Session,
    operator_id: UUID,
    name: str,
    description: Optional[str] = None,
    context: Optional[RequestContext] = None,
) -> DocumentCategory:
    """Create an active document category with a unique name."""
    name = " ".join(name.split())
    try:
        operator = get_operator(db, operator_id)
        _ensure_unique_name(db, name)
        category = DocumentCategory(
            name=name,
            description=(description or "").strip() or None,
            is_active=True,
            created_by=operator.id,
        )
        db.add(category)
        db.flush()
        record_audit(
            db,
            "DOCUMENT_CATEGORY_CREATED",
            actor=operator,
            details={"category_id": str(category.id), "name": name},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(category)
    logger.info("Document category %s created by %s", category.name, operator.id)
    return category


def list_categories(
    db: Session,
    search: Optional[str] = None,
    active_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Tuple[DocumentCategory, int]], int]:
    """Categories by name, each with its number of documents."""
    query = db.query(DocumentCategory)
    if active_only:
        query = query.filter(DocumentCategory.is_active == True)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            DocumentCategory.name.ilike(pattern),
            DocumentCategory.description.ilike(pattern),
        ))
    total = query.count()
    categories = query.order_by(DocumentCategory.name.asc()).offset((page - 1) * limit).limit(limit).all()
    return [(category, _document_count(db, category.id)) for category in categories], total


def update_category(
    db: Session,
    category_id: UUID,
    operator_id: UUID,
    changes: Dict[str, Any],
    context: Optional[RequestContext] = None,
) -> DocumentCategory:
    """Rename, describe or (de)activate a category. Only given keys are applied."""
    try:
        operator = get_operator(db, operator_id)
        category = get_category(db, category_id, lock=True)

        applied = {}
        name = changes.get("name")
        if name is not None:
            name = " ".join(name.split())
            if name != category.name:
                _ensure_unique_name(db, name, exclude_id=category.id)
                applied["name"] = name
        if "description" in changes:
            description = (changes["description"] or "").strip() or None
            if description != category.description:
                applied["description"] = description
        if changes.get("is_active") is not None and changes["is_active"] != category.is_active:
            applied["is_active"] = changes["is_active"]
        if not applied:
            raise NoChangesDetected()

        for field, value in applied.items():
            setattr(category, field, value)
        record_audit(
            db,
            "DOCUMENT_CATEGORY_UPDATED",
            actor=operator,
            details={"category_id": str(category.id), "changes": applied},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(category)
    logger.info("Document category %s updated by %s (%s)", category.id, operator.id, ", ".join(applied))
    return category


def set_category_active(
    db: Session,
    category_id: UUID,
    operator_id: UUID,
    is_active: bool,
    context: Optional[RequestContext] = None,
) -> DocumentCategory:
    """Activate or deactivate a category. Inactive categories accept no new documents."""
    try:
        operator = get_operator(db, operator_id)
        category = get_category(db, category_id, lock=True)
        previous = bool(category.is_active)
        category.is_active = is_active
        record_audit(
            db,
            "DOCUMENT_CATEGORY_ACTIVATED" if is_active else "DOCUMENT_CATEGORY_DEACTIVATED",
            actor=operator,
            details={"category_id": str(category.id), "previous": previous, "current": is_active},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(category)
    logger.info("Document category %s %s by %s", category.id, "activated" if is_active else "deactivated", operator.id)
    return category


def delete_category(
    db: Session,
    category_id: UUID,
    operator_id: UUID,
    context: Optional[RequestContext] = None,
) -> None:
    """Delete an empty category."""
    try:
        operator = get_operator(db, operator_id)
        category = get_category(db, category_id, lock=True)
        count = _document_count(db, category.id)
        if count > 0:
            raise CategoryHasDocuments(context={"category_id": str(category.id), "document_count": count})

        name = category.name
        db.delete(category)
        record_audit(
            db,
            "DOCUMENT_CATEGORY_DELETED",
            actor=operator,
            details={"category_id": str(category_id), "name": name},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Document category %s deleted by %s", category_id, operator.id)


def category_statistics(db: Session) -> dict:
    """Category counts and the categories holding the most documents."""
    categories = db.query(DocumentCategory).all()
    counts = {category.id: _document_count(db, category.id) for category in categories}
    top = sorted(categories, key=lambda category: (-counts[category.id], category.name))[:TOP_CATEGORIES_LIMIT]
    return {
        "total_categories": len(categories),
        "active_categories": sum(1 for category in categories if category.is_active),
        "inactive_categories": sum(1 for category in categories if not category.is_active),
        "categories_with_documents": sum(1 for count in counts.values() if count > 0),
        "categories_without_documents": sum(1 for count in counts.values() if count == 0),
        "top_categories": [
            {"id": str(category.id), "name": category.name, "document_count": counts[category.id]}
            for category in top
        ],
    }


def _active_category(db: Session, category_id: UUID) -> DocumentCategory:
    category = db.query(DocumentCategory).filter(
        DocumentCategory.id == category_id,
        DocumentCategory.is_active == True,
    ).first()
    if category is None:
        raise InvalidCategory(context={"category_id": str(category_id)})
    return category


def get_document(db: Session, document_id: UUID, include_inactive: bool = False, lock: bool = False) -> OfficialDocument:
    query = db.query(OfficialDocument).filter(OfficialDocument.id == document_id)
    if not include_inactive:
        query = query.filter(OfficialDocument.is_active == True)
    if lock:
        query = query.with_for_update().populate_existing()
    document = query.first()
    if not document:
        raise DocumentNotFound(context={"document_id": str(document_id)})
    return document


def create_document(
    db: Session,
    operator_id: UUID,
    title: str,
    category_id: UUID,
    file_url: str,
    file_id: str,
    original_filename: str,
    description: Optional[str] = None,
    file_size: Optional[int] = None,
    context: Optional[RequestContext] = None,
) -> OfficialDocument:
    """Publish an uploaded PDF in an active category."""
    try:
        operator = get_operator(db, operator_id)
        category = _active_category(db, category_id)
        document = OfficialDocument(
            title=title.strip(),
            description=(description or "").strip() or None,
            category_id=category.id,
            file_url=file_url,
            file_id=file_id,
            file_size=file_size,
            original_filename=original_filename,
            is_active=True,
            uploaded_by=operator.id,
        )
        db.add(document)
        db.flush()
        record_audit(
            db,
            "OFFICIAL_DOCUMENT_PUBLISHED",
            actor=operator,
            details={
                "document_id": str(document.id),
                "title": document.title,
                "category": category.name,
                "file_size": file_size,
            },
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(document)
    logger.info("Official document %s published in %s by %s", document.id, category.name, operator.id)
    return document


def list_documents(
    db: Session,
    category_id: Optional[UUID] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[OfficialDocument], int]:
    """Active documents, newest first."""
    query = db.query(OfficialDocument).filter(OfficialDocument.is_active == True)
    if category_id is not None:
        query = query.filter(OfficialDocument.category_id == category_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            OfficialDocument.title.ilike(pattern),
            OfficialDocument.description.ilike(pattern),
        ))
    total = query.count()
    documents = query.order_by(
        OfficialDocument.uploaded_at.desc(), OfficialDocument.title.asc()
    ).offset((page - 1) * limit).limit(limit).all()
    return documents, total


def update_document(
    db: Session,
    document_id: UUID,
    operator_id: UUID,
    changes: Dict[str, Any],
    context: Optional[RequestContext] = None,
) -> OfficialDocument:
    """Edit title, description, category or visibility of a document."""
    try:
        operator = get_operator(db, operator_id)
        document = get_document(db, document_id, include_inactive=True, lock=True)

        applied = {}
        if changes.get("title") is not None and changes["title"].strip() != document.title:
            applied["title"] = changes["title"].strip()
        if "description" in changes:
            description = (changes["description"] or "").strip() or None
            if description != document.description:
                applied["description"] = description
        if changes.get("category_id") is not None and changes["category_id"] != document.category_id:
            applied["category_id"] = _active_category(db, changes["category_id"]).id
        if changes.get("is_active") is not None and changes["is_active"] != document.is_active:
            applied["is_active"] = changes["is_active"]
        if not applied:
            raise NoChangesDetected()

        for field, value in applied.items():
            setattr(document, field, value)
        record_audit(
            db,
            "OFFICIAL_DOCUMENT_UPDATED",
            actor=operator,
            details={"document_id": str(document.id), "changes": applied},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(document)
    logger.info("Official document %s updated by %s", document.id, operator.id)
    return document


def withdraw_document(
    db: Session,
    document_id: UUID,
    operator_id: UUID,
    context: Optional[RequestContext] = None,
) -> OfficialDocument:
    """Hide a document from members. The record is kept."""
    try:
        operator = get_operator(db, operator_id)
        document = get_document(db, document_id, lock=True)
        document.is_active = False
        record_audit(
            db,
            "OFFICIAL_DOCUMENT_WITHDRAWN",
            actor=operator,
            details={
                "document_id": str(document.id),
                "title": document.title,
                "category_id": str(document.category_id),
            },
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(document)
    logger.info("Official document %s withdrawn by %s", document.id, operator.id)
    return document


def document_statistics(db: Session) -> dict:
    """Active and withdrawn counts, with active documents per category."""
    rows = db.query(
        DocumentCategory.id, DocumentCategory.name, func.count(OfficialDocument.id)
    ).join(
        OfficialDocument, OfficialDocument.category_id == DocumentCategory.id
    ).filter(
        OfficialDocument.is_active == True
    ).group_by(
        DocumentCategory.id, DocumentCategory.name
    ).order_by(DocumentCategory.name.asc()).all()

    return {
        "active_documents": db.query(OfficialDocument).filter(OfficialDocument.is_active == True).count(),
        "withdrawn_documents": db.query(OfficialDocument).filter(OfficialDocument.is_active == False).count(),
        "by_category": [
            {"category_id": str(category_id), "name": name, "document_count": count}
            for category_id, name, count in rows
        ],
    }
