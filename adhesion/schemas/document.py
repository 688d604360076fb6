import re
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from adhesion.models.document import DocumentCategory, OfficialDocument

CATEGORY_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9À-ÿ\s\-']+$")
MAX_FILE_SIZE = 50 * 1024 * 1024


def _check_category_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not CATEGORY_NAME_PATTERN.match(value):
        raise ValueError("Category names may only contain letters, digits, spaces, hyphens and apostrophes")
    return value


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_category_name(value)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_category_name(value)


class CategoryToggle(BaseModel):
    is_active: bool


class CategoryResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    is_active: bool
    document_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_category(cls, category: DocumentCategory, document_count: int = 0) -> "CategoryResponse":
        return cls(
            id=str(category.id),
            name=category.name,
            description=category.description,
            is_active=bool(category.is_active),
            document_count=document_count,
            created_at=category.created_at,
            updated_at=category.updated_at,
        )


class CategoryListResponse(BaseModel):
    items: List[CategoryResponse]
    total: int
    page: int
    limit: int


class DocumentCreate(BaseModel):
    title: str = Field(..., min_length=5, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    category_id: UUID
    file_url: str = Field(..., description="URL of the uploaded PDF")
    file_id: str = Field(..., min_length=1, max_length=255, description="Identifier of the file in storage")
    file_size: Optional[int] = Field(None, ge=1, le=MAX_FILE_SIZE)
    original_filename: str = Field(..., min_length=1, max_length=255)

    @field_validator("file_url")
    @classmethod
    def check_file_url(cls, value: str) -> str:
        if not value.startswith(("https://", "http://")):
            raise ValueError("file_url must be an http(s) URL")
        return value

    @field_validator("original_filename")
    @classmethod
    def check_pdf(cls, value: str) -> str:
        if not value.lower().endswith(".pdf"):
            raise ValueError("Only PDF files are accepted")
        return value


class DocumentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    category_id: Optional[UUID] = None
    is_active: Optional[bool] = None


class DocumentResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    category_id: str
    category_name: Optional[str] = None
    file_url: str
    file_size: Optional[int] = None
    original_filename: str
    is_active: bool
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, document: OfficialDocument) -> "DocumentResponse":
        return cls(
            id=str(document.id),
            title=document.title,
            description=document.description,
            category_id=str(document.category_id),
            category_name=document.category.name if document.category else None,
            file_url=document.file_url,
            file_size=document.file_size,
            original_filename=document.original_filename,
            is_active=bool(document.is_active),
            uploaded_by=document.uploader.full_name if document.uploader else None,
            uploaded_at=document.uploaded_at,
            updated_at=document.updated_at,
        )


class DocumentListResponse(BaseModel):
    items: List[DocumentResponse]
    total: int
    page: int
    limit: int
