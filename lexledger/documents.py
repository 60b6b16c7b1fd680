"""
LexLedger - Document Storage and Templates

Uploads are streamed to UPLOAD_DIR under a random name; the row keeps the
original name, size, MIME type, extracted text and version. Uploading a file
with the same name under the same matter adds a new version to that group.
"""

import json
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Iterable, List, Optional

from fastapi import UploadFile
from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment
from pypdf import PdfReader
from pypdf.errors import PdfReadError
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, changed_values, log_event, snapshot
from lexledger.config import Settings
from lexledger.errors import NotFound, ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.document import Document, DocumentTemplate
from lexledger.models.matter import Matter

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
MAX_EXTRACTED_TEXT = 200_000
TEXT_EXTENSIONS = {".txt", ".md", ".csv"}


# =============================================================================
# FILE STORAGE
# =============================================================================

def generate_stored_filename(original_filename: str) -> str:
    """Random storage name keeping the (lowercased) extension."""
    ext = Path(original_filename).suffix.lower()
    return f"{uuid.uuid4().hex}{ext}"


def get_file_path(config: Settings, stored_filename: str) -> Path:
    return config.UPLOAD_DIR / stored_filename


def validate_upload(config: Settings, file: UploadFile) -> None:
    if not file.filename:
        raise ValidationFailed.field("file", "A file is required")
    ext = Path(file.filename).suffix.lower()
    if ext not in config.ALLOWED_EXTENSIONS:
        raise ValidationFailed.field("file", f"File type {ext or '(none)'} is not allowed")


async def save_uploaded_file(config: Settings, file: UploadFile, stored_filename: str) -> int:
    """
    Stream the upload to disk, enforcing MAX_FILE_SIZE_MB.

    Returns the file size in bytes. A rejected file leaves nothing behind.
    """
    config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    file_path = get_file_path(config, stored_filename)
    max_size = config.MAX_FILE_SIZE_MB * 1024 * 1024
    file_size = 0

    try:
        with open(file_path, "wb") as f:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                file_size += len(chunk)
                if file_size > max_size:
                    raise ValidationFailed.field(
                        "file", f"File too large. Maximum size is {config.MAX_FILE_SIZE_MB}MB"
                    )
                f.write(chunk)
    except BaseException:
        file_path.unlink(missing_ok=True)
        raise

    return file_size


def remove_stored_files(config: Settings, stored_filenames: Iterable[str]) -> None:
    for name in stored_filenames:
        try:
            get_file_path(config, name).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove stored file %s: %s", name, exc)


def extract_text(path: Path, extension: str) -> Optional[str]:
    """Searchable text for plain-text and PDF uploads; None for anything else."""
    try:
        if extension in TEXT_EXTENSIONS:
            return path.read_text(encoding="utf-8", errors="replace")[:MAX_EXTRACTED_TEXT]
        if extension == ".pdf":
            reader = PdfReader(str(path))
            pages = [page.extract_text() or "" for page in reader.pages]
            text = "\n".join(pages).strip()
            return text[:MAX_EXTRACTED_TEXT] or None
    except (PdfReadError, OSError, ValueError) as exc:
        logger.warning("Text extraction failed for %s: %s", path.name, exc)
    return None


# =============================================================================
# DOCUMENTS
# =============================================================================

async def list_documents(
    db: AsyncSession,
    matter_id: Optional[str] = None,
    search: Optional[str] = None,
    latest_only: bool = False,
) -> List[Document]:
    q = repository.query(db, Document).filter_by(matter_id=matter_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.where(or_(
            Document.name.ilike(pattern),
            Document.file_name.ilike(pattern),
            Document.tags.ilike(pattern),
            Document.text_content.ilike(pattern),
        ))
    documents = await q.order_by(Document.created_at.desc()).all()
    if latest_only:
        newest = {}
        for doc in documents:
            key = doc.group_key or doc.id
            if key not in newest or doc.version > newest[key].version:
                newest[key] = doc
        documents = [d for d in documents if newest.get(d.group_key or d.id) is d]
    return documents


async def upload_document(
    db: AsyncSession,
    config: Settings,
    actor: AuditContext,
    file: UploadFile,
    matter_id: Optional[str] = None,
    name: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[str] = None,
    uploaded_by_id: Optional[str] = None,
) -> Document:
    validate_upload(config, file)
    if matter_id and await repository.find(db, Matter, matter_id) is None:
        raise ValidationFailed.field("matter_id", "Matter does not exist")

    display_name = (name or file.filename).strip()
    stored_filename = generate_stored_filename(file.filename)
    file_size = await save_uploaded_file(config, file, stored_filename)
    extension = Path(file.filename).suffix.lower()

    try:
        previous = await (
            repository.query(db, Document)
            .where(Document.name == display_name, Document.matter_id == matter_id)
            .order_by(Document.version.desc())
            .first()
        )
        document = Document(
            name=display_name,
            file_name=file.filename,
            file_path=stored_filename,
            file_size=file_size,
            mime_type=file.content_type or mimetypes.guess_type(file.filename)[0],
            description=description,
            tags=tags,
            matter_id=matter_id,
            uploaded_by_id=uploaded_by_id,
            version=previous.version + 1 if previous else 1,
            text_content=extract_text(get_file_path(config, stored_filename), extension),
        )
        document.id = repository.new_id()
        document.group_key = (previous.group_key or previous.id) if previous else document.id

        await repository.create(db, document)
        await log_event(
            db, actor, AuditAction.UPLOAD, "Document", document.id,
            new_values=snapshot(document, ["name", "file_name", "file_size", "version", "matter_id"]),
            details=f"Uploaded {document.file_name} (v{document.version})",
        )
        await db.commit()
    except BaseException:
        remove_stored_files(config, [stored_filename])
        raise

    return document


async def get_document(db: AsyncSession, actor: Optional[AuditContext], document_id: str) -> Document:
    """Document metadata; logged as VIEW when an actor is given."""
    document = await repository.get_or_404(db, Document, document_id)
    if actor is not None:
        await log_event(
            db, actor, AuditAction.VIEW, "Document", document.id,
            details=f"Previewed {document.file_name}",
        )
        await db.commit()
    return document


async def get_document_versions(db: AsyncSession, document: Document) -> List[Document]:
    key = document.group_key or document.id
    return await (
        repository.query(db, Document)
        .where(or_(Document.group_key == key, Document.id == key))
        .order_by(Document.version.desc())
        .all()
    )


async def open_for_download(
    db: AsyncSession,
    config: Settings,
    actor: AuditContext,
    document_id: str,
) -> tuple[Document, Path]:
    document = await repository.get_or_404(db, Document, document_id)
    path = get_file_path(config, document.file_path)
    if not path.exists():
        raise NotFound("File", document.id, "The stored file is missing")

    await log_event(
        db, actor, AuditAction.DOWNLOAD, "Document", document.id,
        details=f"Downloaded {document.file_name}",
    )
    await db.commit()
    return document, path


async def update_document(db: AsyncSession, actor: AuditContext, document_id: str, changes: dict) -> Document:
    document = await repository.get_or_404(db, Document, document_id)
    changes = {k: v for k, v in changes.items() if k in ("name", "description", "tags", "matter_id")}
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationFailed.field("name", "Name is required")
    if changes.get("matter_id") and await repository.find(db, Matter, changes["matter_id"]) is None:
        raise ValidationFailed.field("matter_id", "Matter does not exist")

    before = snapshot(document)
    await repository.update(db, document, changes)
    old_values, new_values = changed_values(before, snapshot(document))
    await log_event(db, actor, AuditAction.UPDATE, "Document", document.id, old_values, new_values)
    await db.commit()
    return document


async def delete_document(db: AsyncSession, config: Settings, actor: AuditContext, document_id: str) -> None:
    document = await repository.get_or_404(db, Document, document_id)
    old_values = snapshot(document, ["name", "file_name", "file_path", "version", "matter_id"])
    await repository.delete(db, document)
    await log_event(
        db, actor, AuditAction.DELETE, "Document", document_id,
        old_values=old_values,
        details=f"Deleted {old_values['file_name']}",
    )
    await db.commit()
    remove_stored_files(config, [old_values["file_path"]])


async def stored_files_for_matter(db: AsyncSession, matter_id: str) -> List[str]:
    result = await db.execute(select(Document.file_path).where(Document.matter_id == matter_id))
    return list(result.scalars().all())


async def stored_files_for_client(db: AsyncSession, client_id: str) -> List[str]:
    """Stored files of every document under the client's matters."""
    result = await db.execute(
        select(Document.file_path)
        .join(Matter, Document.matter_id == Matter.id)
        .where(Matter.client_id == client_id)
    )
    return list(result.scalars().all())


# =============================================================================
# DOCUMENT TEMPLATES
# =============================================================================

_template_env = SandboxedEnvironment(undefined=StrictUndefined, autoescape=False)


def _variables_json(variables: Optional[List[str]]) -> Optional[str]:
    return json.dumps(list(variables)) if variables else None


def _check_template(content: str) -> None:
    try:
        _template_env.parse(content)
    except TemplateError as exc:
        raise ValidationFailed.field("content", f"Template syntax error: {exc}") from exc


async def list_templates(db: AsyncSession, category: Optional[str] = None, active_only: bool = True) -> List[DocumentTemplate]:
    q = repository.query(db, DocumentTemplate).filter_by(category=category)
    if active_only:
        q = q.where(DocumentTemplate.is_active.is_(True))
    return await q.order_by(DocumentTemplate.name).all()


async def create_template(
    db: AsyncSession,
    actor: AuditContext,
    name: str,
    content: str,
    category: Optional[str] = None,
    variables: Optional[List[str]] = None,
    created_by_id: Optional[str] = None,
) -> DocumentTemplate:
    if not (name or "").strip():
        raise ValidationFailed.field("name", "Name is required")
    _check_template(content)

    template = DocumentTemplate(
        name=name.strip(),
        category=category,
        content=content,
        variables=_variables_json(variables),
        created_by_id=created_by_id,
    )
    await repository.create(db, template)
    await log_event(
        db, actor, AuditAction.CREATE, "DocumentTemplate", template.id,
        new_values=snapshot(template, ["name", "category", "variables"]),
    )
    await db.commit()
    return template


async def update_template(db: AsyncSession, actor: AuditContext, template_id: str, changes: dict) -> DocumentTemplate:
    template = await repository.get_or_404(db, DocumentTemplate, template_id)
    changes = {k: v for k, v in changes.items() if k in ("name", "category", "content", "variables", "is_active")}
    if "content" in changes:
        _check_template(changes["content"])
    if "variables" in changes:
        changes["variables"] = _variables_json(changes["variables"])

    before = snapshot(template)
    await repository.update(db, template, changes)
    old_values, new_values = changed_values(before, snapshot(template))
    await log_event(db, actor, AuditAction.UPDATE, "DocumentTemplate", template.id, old_values, new_values)
    await db.commit()
    return template


async def delete_template(db: AsyncSession, actor: AuditContext, template_id: str) -> None:
    template = await repository.get_or_404(db, DocumentTemplate, template_id)
    old_values = snapshot(template, ["name", "category"])
    await repository.delete(db, template)
    await log_event(db, actor, AuditAction.DELETE, "DocumentTemplate", template_id, old_values=old_values)
    await db.commit()


def render_template_content(content: str, variables: dict) -> str:
    """Render template text in a sandbox. Missing variables are reported by name."""
    try:
        return _template_env.from_string(content).render(**variables)
    except TemplateError as exc:
        raise ValidationFailed.field("variables", f"Template could not be rendered: {exc}") from exc


async def render_template(db: AsyncSession, template_id: str, variables: dict) -> str:
    template = await repository.get_or_404(db, DocumentTemplate, template_id)
    return render_template_content(template.content, variables)
