"""Modelos persistidos do pipeline de extração de recibos."""

from __future__ import annotations

import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, BigInteger, Boolean, DateTime, Date, Float, Numeric, Text, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from models import JobStatus


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.utcnow()


class Profile(Base):
    """Perfil de negócio dono dos recibos (contexto para a LLM)."""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    job_title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    job_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    default_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class ReceiptFile(Base):
    """Arquivo de recibo ingerido (PDF, imagem ou texto)."""
    __tablename__ = "receipt_files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    profile_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    source_path: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    file_ext: Mapped[str] = mapped_column(String(16), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)  # sha256 hex
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class ExtractionJob(Base):
    """Uma tentativa de extração (OCR + parse) de um arquivo."""
    __tablename__ = "extraction_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    file_id: Mapped[str] = mapped_column(ForeignKey("receipt_files.id"), nullable=False, index=True)
    profile_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    receipt_id: Mapped[Optional[str]] = mapped_column(ForeignKey("receipts.id"), nullable=True)
    format: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True, default=JobStatus.RUNNING)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Artefatos do OCR
    ocr_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extraction_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    model_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    model_params: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON

    # Artefatos do parse (saída bruta da LLM)
    extracted_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Receipt(Base):
    """Versão de um recibo estruturado; apenas uma com is_current=True por identidade."""
    __tablename__ = "receipts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    profile_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    file_id: Mapped[Optional[str]] = mapped_column(ForeignKey("receipt_files.id"), nullable=True, index=True)
    file_path: Mapped[str] = mapped_column(Text, nullable=False, default="")

    merchant_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    tx_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    subtotal: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    discount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    other_fees: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    tip: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    tax: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    total: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    category_name: Mapped[str] = mapped_column(String(64), nullable=False, default="Other")
    payment_method: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payment_last4: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_receipts_natural_key", "profile_id", "merchant_name", "tx_date", "total", "currency_code"),
    )
