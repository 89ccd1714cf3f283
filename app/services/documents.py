"""
Versioned sub-document store for proposals and final forms.

Versions are append-only. The store holds no authorization logic; callers
reach it only after the request's state guard has passed.
"""
import os
from datetime import datetime
from typing import Callable, Generic, List, Optional, Type, TypeVar
from urllib.parse import urlparse

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.domain import FinalFormDocument, ProposalDocument
from app.services.errors import NotFoundError, ValidationError

ALLOWED_DOCUMENT_EXTENSIONS = frozenset({"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "zip"})

DocumentModel = TypeVar("DocumentModel", ProposalDocument, FinalFormDocument)


def validate_document(
    title: Optional[str],
    document_url: Optional[str],
    max_bytes: int,
    file_name: Optional[str] = None,
    size_bytes: Optional[int] = None,
) -> None:
    """
    Check a document reference before a version is written.

    The extension comes from file_name when given, otherwise from the URL path.
    A reference with no extension at all is accepted (storage URLs often have none).
    """
    if not (title or "").strip():
        raise ValidationError("Document title is required")
    if not (document_url or "").strip():
        raise ValidationError("Document URL is required")

    name = file_name or urlparse(document_url.strip()).path
    _, ext = os.path.splitext(name)
    ext = ext.lstrip(".").lower()
    if ext and ext not in ALLOWED_DOCUMENT_EXTENSIONS:
        raise ValidationError(
            f"File type .{ext} is not accepted. Allowed types: "
            f"{', '.join(sorted(ALLOWED_DOCUMENT_EXTENSIONS))}"
        )

    if size_bytes is not None:
        if size_bytes <= 0:
            raise ValidationError("Document is empty")
        if size_bytes > max_bytes:
            raise ValidationError(
                f"Document is too large: {size_bytes / (1024 * 1024):.2f} MB. "
                f"Maximum allowed size is {max_bytes / (1024 * 1024):.0f} MB"
            )


class VersionedDocumentStore(Generic[DocumentModel]):
    """Append-only version list for one document type, with a latest() accessor."""

    def __init__(self, db: Session, model: Type[DocumentModel], clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.model = model
        self.clock = clock

    def add_version(self, request_id: int, title: str, document_url: str, submitted_by: str) -> DocumentModel:
        """Append a new version. Never touches earlier versions. Flushes, does not commit."""
        last_sequence = self.db.query(func.max(self.model.sequence)).filter(
            self.model.request_id == request_id
        ).scalar()

        version = self.model(
            request_id=request_id,
            sequence=(last_sequence or 0) + 1,
            title=title.strip(),
            document_url=document_url.strip(),
            submitted_by=submitted_by,
            created_at=self.clock(),
        )
        self.db.add(version)
        self.db.flush()
        return version

    def latest(self, request_id: int) -> DocumentModel:
        """The version with the greatest creation timestamp (sequence breaks ties)."""
        version = self.db.query(self.model).filter(
            self.model.request_id == request_id
        ).order_by(
            self.model.created_at.desc(),
            self.model.sequence.desc(),
        ).first()

        if version is None:
            raise NotFoundError(f"No {self.label} has been submitted for request {request_id}")
        return version

    def list_all(self, request_id: int) -> List[DocumentModel]:
        """All versions, newest first."""
        return self.db.query(self.model).filter(
            self.model.request_id == request_id
        ).order_by(
            self.model.created_at.desc(),
            self.model.sequence.desc(),
        ).all()

    @property
    def label(self) -> str:
        return "proposal" if self.model is ProposalDocument else "final form"


def proposal_store(db: Session, clock: Callable[[], datetime] = utcnow) -> VersionedDocumentStore[ProposalDocument]:
    return VersionedDocumentStore(db, ProposalDocument, clock)


def final_form_store(db: Session, clock: Callable[[], datetime] = utcnow) -> VersionedDocumentStore[FinalFormDocument]:
    return VersionedDocumentStore(db, FinalFormDocument, clock)
