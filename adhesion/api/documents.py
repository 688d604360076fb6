from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from adhesion.db.base import get_db
from adhesion.core.audit import RequestContext
from adhesion.core.dependencies import require_operation, get_request_context
from adhesion.models.member import Member
from adhesion.schemas.document import (
    CategoryCreate,
    CategoryListResponse,
    CategoryResponse,
    CategoryToggle,
    CategoryUpdate,
    DocumentCreate,
    DocumentListResponse,
    DocumentResponse,
    DocumentUpdate,
)
from adhesion.services.rbac import Operation
from adhesion.services import documents as document_service

router = APIRouter(prefix="/api/documents", tags=["documents"])


# Categories

@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryCreate,
    current_member: Member = Depends(require_operation(Operation.MANAGE_DOCUMENTS)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    category = document_service.create_category(
        db, current_member.id, payload.name, payload.description, context=context
    )
    return CategoryResponse.from_category(category)


@router.get("/categories", response_model=CategoryListResponse)
def list_categories(
    search: Optional[str] = Query(None, max_length=100),
    active_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_member: Member = Depends(require_operation(Operation.VIEW_DOCUMENTS)),
    db: Session = Depends(get_db)
):
    """Document categories by name, with their document counts."""
    rows, total = document_service.list_categories(
        db, search=search, active_only=active_only, page=page, limit=limit
    )
    return CategoryListResponse(
        items=[CategoryResponse.from_category(category, count) for category, count in rows],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/categories/statistics")
def get_category_statistics(
    current_member: Member = Depends(require_operation(Operation.MANAGE_DOCUMENTS)),
    db: Session = Depends(get_db)
):
    return document_service.category_statistics(db)


@router.get("/categories/{category_id}")
def get_category(
    category_id: UUID,
    current_member: Member = Depends(require_operation(Operation.VIEW_DOCUMENTS)),
    db: Session = Depends(get_db)
):
    """A category with its active documents."""
    category = document_service.get_category(db, category_id)
    documents, total = document_service.list_documents(db, category_id=category.id, limit=100)
    return {
        "category": CategoryResponse.from_category(category, total),
        "documents": [DocumentResponse.from_document(document) for document in documents],
    }


@router.put("/categories/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: UUID,
    payload: CategoryUpdate,
    current_member: Member = Depends(require_operation(Operation.MANAGE_DOCUMENTS)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    category = document_service.update_category(
        db, category_id, current_member.id, payload.model_dump(exclude_unset=True), context=context
    )
    return CategoryResponse.from_category(category)


@router.patch("/categories/{category_id}/toggle", response_model=CategoryResponse)
def toggle_category(
    category_id: UUID,
    payload: CategoryToggle,
    current_member: Member = Depends(require_operation(Operation.MANAGE_DOCUMENTS)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Activate or deactivate a category."""
    category = document_service.set_category_active(
        db, category_id, current_member.id, payload.is_active, context=context
    )
    return CategoryResponse.from_category(category)


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: UUID,
    current_member: Member = Depends(require_operation(Operation.MANAGE_DOCUMENTS)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Delete a category that holds no document."""
    document_service.delete_category(db, category_id, current_member.id, context=context)
    return {"message": "Category deleted"}


# Documents

@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def publish_document(
    payload: DocumentCreate,
    current_member: Member = Depends(require_operation(Operation.MANAGE_DOCUMENTS)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Publish an uploaded PDF in an active category."""
    document = document_service.create_document(
        db,
        current_member.id,
        title=payload.title,
        category_id=payload.category_id,
        file_url=payload.file_url,
        file_id=payload.file_id,
        original_filename=payload.original_filename,
        description=payload.description,
        file_size=payload.file_size,
        context=context,
    )
    return DocumentResponse.from_document(document)


@router.get("", response_model=DocumentListResponse)
def list_documents(
    category_id: Optional[UUID] = None,
    search: Optional[str] = Query(None, min_length=2, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_member: Member = Depends(require_operation(Operation.VIEW_DOCUMENTS)),
    db: Session = Depends(get_db)
):
    """Active official documents, newest first."""
    documents, total = document_service.list_documents(
        db, category_id=category_id, search=search, page=page, limit=limit
    )
    return DocumentListResponse(
        items=[DocumentResponse.from_document(document) for document in documents],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/statistics")
def get_document_statistics(
    current_member: Member = Depends(require_operation(Operation.MANAGE_DOCUMENTS)),
    db: Session = Depends(get_db)
):
    return document_service.document_statistics(db)


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: UUID,
    current_member: Member = Depends(require_operation(Operation.VIEW_DOCUMENTS)),
    db: Session = Depends(get_db)
):
    return DocumentResponse.from_document(document_service.get_document(db, document_id))


@router.put("/{document_id}", response_model=DocumentResponse)
def update_document(
    document_id: UUID,
    payload: DocumentUpdate,
    current_member: Member = Depends(require_operation(Operation.MANAGE_DOCUMENTS)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    document = document_service.update_document(
        db, document_id, current_member.id, payload.model_dump(exclude_unset=True), context=context
    )
    return DocumentResponse.from_document(document)


@router.delete("/{document_id}")
def withdraw_document(
    document_id: UUID,
    current_member: Member = Depends(require_operation(Operation.MANAGE_DOCUMENTS)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Withdraw a document. It stays on record but members no longer see it."""
    document_service.withdraw_document(db, document_id, current_member.id, context=context)
    return {"message": "Document withdrawn"}
