"""Objetos de valor efêmeros trocados entre as etapas do pipeline."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationInfo, field_validator

MONEY_PATTERN = r"^-?\d+(\.\d{1,2})?$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
LAST4_PATTERN = r"^\d{4}$"

# abaixo disso a imagem é anexada ao prompt e o job vai para revisão
IMAGE_CONFIDENCE_THRESHOLD = 0.6

MONEY_FIELDS = ("subtotal", "discount", "other_fees", "tip", "tax", "total")
REQUIRED_FIELDS = ("merchant_name", "tx_date", "total", "currency_code", "category")


class ExtractionResult(BaseModel):
    """Resultado da extração de texto/OCR de um arquivo."""

    text: str = ""
    pages: int = 0
    source_type: str = ""  # PDF, IMAGE, TXT
    method: str = ""  # pdf-text, pdf-ocr, image-ocr, text
    language: str = ""
    confidence: float = 0.0
    warnings: List[str] = Field(default_factory=list)
    duration: float = 0.0  # segundos


class ReceiptFields(BaseModel):
    """Campos estruturados devolvidos pela LLM."""

    model_config = ConfigDict(extra="forbid")

    merchant_name: str
    tx_date: str = Field(pattern=DATE_PATTERN)
    subtotal: Optional[str] = Field(default=None, pattern=MONEY_PATTERN)
    discount: Optional[str] = Field(default=None, pattern=MONEY_PATTERN)
    other_fees: Optional[str] = Field(default=None, pattern=MONEY_PATTERN)
    tip: Optional[str] = Field(default=None, pattern=MONEY_PATTERN)
    tax: Optional[str] = Field(default=None, pattern=MONEY_PATTERN)
    total: str = Field(pattern=MONEY_PATTERN)
    currency_code: str = Field(min_length=3, max_length=3)
    category: str
    payment_method: Optional[str] = None
    payment_last4: Optional[str] = Field(default=None, pattern=LAST4_PATTERN)
    description: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    # campos alterados pela sanitização (não serializado)
    _adjustments: List[str] = PrivateAttr(default_factory=list)

    @field_validator("category")
    @classmethod
    def _category_in_taxonomy(cls, value: str, info: ValidationInfo) -> str:
        allowed = (info.context or {}).get("allowed_categories")
        if allowed and value not in allowed:
            raise ValueError(f"categoria fora da taxonomia: {value!r}")
        return value

    @property
    def adjustments(self) -> List[str]:
        return self._adjustments


class ProfileContext(BaseModel):
    """Contexto de negócio do perfil usado no prompt."""

    name: str = ""
    job_title: str = ""
    job_description: str = ""


class ExtractRequest(BaseModel):
    """Entrada do extrator de campos."""

    ocr_text: str = ""
    filename_hint: str = ""
    folder_hint: str = ""
    allowed_categories: List[str] = Field(default_factory=list)
    default_currency: str = ""
    prep_confidence: float = 0.0
    file_path: str = ""
    content_hash_hex: str = ""
    artifact_cache_dir: str = ""
    profile: ProfileContext = Field(default_factory=ProfileContext)
    timezone: str = ""
    country_hint: str = ""
