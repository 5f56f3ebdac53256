# marketplace/models/verification.py

import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from marketplace.utils.database import Base, utcnow


class DocumentType(str, enum.Enum):
    NATIONAL_ID = "NATIONAL_ID"
    PASSPORT = "PASSPORT"
    BUSINESS_REGISTRATION = "BUSINESS_REGISTRATION"
    TAX_CERTIFICATE = "TAX_CERTIFICATE"
    PROOF_OF_ADDRESS = "PROOF_OF_ADDRESS"
    BANK_STATEMENT = "BANK_STATEMENT"
    OTHER = "OTHER"


class DocumentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class VerificationDocument(Base):
    __tablename__ = "verification_documents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # продавец
    document_type = Column(Enum(DocumentType, native_enum=False, length=32), nullable=False)
    document_path = Column(String, nullable=False)   # путь/URL файла, отображение на стороне фронтенда
    document_name = Column(String, nullable=True)
    status = Column(Enum(DocumentStatus, native_enum=False, length=20), nullable=False, default=DocumentStatus.PENDING, index=True)
    rejection_reason = Column(Text, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
