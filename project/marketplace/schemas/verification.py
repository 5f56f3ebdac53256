# marketplace/schemas/verification.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from marketplace.models.verification import DocumentType, DocumentStatus

# ────────────── Схема для CREATE ──────────────
class DocumentCreate(BaseModel):
    document_type: DocumentType
    document_path: str = Field(..., min_length=1)
    document_name: Optional[str] = None

# ────────────── Решение администратора ──────────────
class DocumentReview(BaseModel):
    approve: bool
    reason: Optional[str] = None

# ────────────── Схема для RESPONSE ──────────────
class Document(DocumentCreate):
    id: int
    user_id: int
    status: DocumentStatus
    rejection_reason: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by_id: Optional[int] = None

    model_config = {
        "from_attributes": True
    }
