"""
LexLedger - Document Routes

Document templates live under ``/documents/templates`` and are declared
before the ``/{document_id}`` routes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import documents
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import require_user
from lexledger.config import Settings, get_settings
from lexledger.database import get_db
from lexledger.models.user import User
from lexledger.schemas import (
    DocumentDetailOut,
    DocumentOut,
    DocumentTemplateCreate,
    DocumentTemplateOut,
    DocumentTemplateUpdate,
    DocumentUpdate,
    Message,
    RenderOut,
    RenderRequest,
)

router = APIRouter(prefix="/documents", tags=["documents"], dependencies=[Depends(require_user)])


@router.get("", response_model=List[DocumentOut])
async def list_documents(
    matter_id: Optional[str] = None,
    search: Optional[str] = None,
    latest_only: bool = False,
    db: AsyncSession = Depends(get_db),
):
    return await documents.list_documents(db, matter_id=matter_id, search=search, latest_only=latest_only)


@router.post("/upload", response_model=DocumentOut, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    matter_id: str = Form(None),
    name: str = Form(None),
    description: str = Form(None),
    tags: str = Form(None),
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
    user: User = Depends(require_user),
):
    """Upload a file; a second upload with the same name under a matter becomes a new version."""
    return await documents.upload_document(
        db, config, actor, file,
        matter_id=matter_id or None,
        name=name,
        description=description,
        tags=tags,
        uploaded_by_id=user.id,
    )


# =============================================================================
# TEMPLATES
# =============================================================================

@router.get("/templates", response_model=List[DocumentTemplateOut])
async def list_templates(category: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    return await documents.list_templates(db, category=category)


@router.post("/templates", response_model=DocumentTemplateOut, status_code=201)
async def create_template(
    body: DocumentTemplateCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    user: User = Depends(require_user),
):
    return await documents.create_template(
        db, actor, body.name, body.content,
        category=body.category,
        variables=body.variables,
        created_by_id=user.id,
    )


@router.post("/templates/{template_id}/edit", response_model=DocumentTemplateOut)
async def edit_template(
    template_id: str,
    body: DocumentTemplateUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await documents.update_template(db, actor, template_id, body.model_dump(exclude_unset=True))


@router.post("/templates/{template_id}/delete", response_model=Message)
async def delete_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await documents.delete_template(db, actor, template_id)
    return {"detail": "Template deleted"}


@router.post("/templates/{template_id}/render", response_model=RenderOut)
async def render_template(template_id: str, body: RenderRequest, db: AsyncSession = Depends(get_db)):
    return {"content": await documents.render_template(db, template_id, body.variables)}


# =============================================================================
# DOCUMENTS
# =============================================================================

@router.get("/{document_id}", response_model=DocumentDetailOut)
async def document_details(
    document_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    """Document metadata and versions. Logged as VIEW."""
    document = await documents.get_document(db, actor, document_id)
    versions = await documents.get_document_versions(db, document)
    return {**DocumentOut.model_validate(document).model_dump(), "versions": versions}


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    document, path = await documents.open_for_download(db, config, actor, document_id)
    return FileResponse(
        path,
        filename=document.file_name,
        media_type=document.mime_type or "application/octet-stream",
    )


@router.post("/{document_id}/edit", response_model=DocumentOut)
async def edit_document(
    document_id: str,
    body: DocumentUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await documents.update_document(db, actor, document_id, body.model_dump(exclude_unset=True))


@router.post("/{document_id}/delete", response_model=Message)
async def delete_document(
    document_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    await documents.delete_document(db, config, actor, document_id)
    return {"detail": "Document deleted"}
