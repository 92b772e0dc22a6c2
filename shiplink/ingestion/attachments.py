"""Access to text already extracted from document attachments."""

import uuid
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.models.attachment_text import AttachmentText


class AttachmentTextStore(Protocol):
    async def get_texts(self, document_id: uuid.UUID) -> list[tuple[str, str]]: ...

    async def save_text(self, document_id: uuid.UUID, filename: str, text: str | None) -> object: ...


class SqlAttachmentTextStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_texts(self, document_id: uuid.UUID) -> list[tuple[str, str]]:
        """(filename, text) pairs in insertion order, empty texts skipped."""
        result = await self.db.execute(
            select(AttachmentText.filename, AttachmentText.extracted_text)
            .where(AttachmentText.document_id == document_id)
            .order_by(AttachmentText.created_at, AttachmentText.filename)
        )
        return [(name, text) for name, text in result.all() if text and text.strip()]

    async def save_text(self, document_id: uuid.UUID, filename: str, text: str | None) -> AttachmentText:
        result = await self.db.execute(
            select(AttachmentText).where(
                AttachmentText.document_id == document_id,
                AttachmentText.filename == filename,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = AttachmentText(id=uuid.uuid4(), document_id=document_id, filename=filename)
            self.db.add(row)
        row.extracted_text = text
        await self.db.flush()
        return row
