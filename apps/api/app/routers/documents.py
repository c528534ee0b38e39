from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.models.entities import Document
from app.schemas.resources import DocumentCreate, DocumentListResponse, DocumentResponse
from app.services.access import FamilyScope, family_scope, get_scoped
from app.services.policy import Action, ResourceKind

router = APIRouter(prefix="/v1/families/{family_id}/documents", tags=["documents"])


def _to_document_response(doc: Document) -> DocumentResponse:
    return DocumentResponse.model_validate(doc, from_attributes=True)


@router.get("", response_model=DocumentListResponse)
def list_documents(
    family_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.document, Action.read)),
):
    docs = db.execute(
        select(Document).where(Document.family_id == family_id).order_by(Document.created_at.desc(), Document.id.desc())
    ).scalars().all()
    return DocumentListResponse(items=[_to_document_response(item) for item in docs])


@router.post("", response_model=DocumentResponse, status_code=201)
def create_document(
    family_id: int,
    payload: DocumentCreate,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.document, Action.create)),
):
    # file_url points at object storage; uploads themselves happen elsewhere.
    doc = Document(family_id=family_id, title=payload.title, file_url=payload.file_url, created_by=scope.user_id)
    db.add(doc)
    db.commit()
    db.refresh(doc)
    return _to_document_response(doc)


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    family_id: int,
    document_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.document, Action.read)),
):
    return _to_document_response(get_scoped(db, Document, document_id, family_id, "document"))


@router.delete("/{document_id}", status_code=204)
def delete_document(
    family_id: int,
    document_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.document, Action.delete)),
):
    doc = get_scoped(db, Document, document_id, family_id, "document")
    db.delete(doc)
    db.commit()
    return Response(status_code=204)
