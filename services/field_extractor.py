"""
Extração de campos estruturados do recibo via LLM, com schema estrito e sanitização tolerante.
"""

import base64
import json
import logging
import mimetypes
import os
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from config import LLMSettings
from models import FileFormat
from models.extraction import IMAGE_CONFIDENCE_THRESHOLD, ExtractRequest, ReceiptFields
from prompts.receipt_prompts import ReceiptPrompts
from services.errors import SchemaValidationError
from services.heic_converter import cached_png_path
from services.llm_service import LLMService
from services.receipt_schema import build_schema, sanitize, validate_fields


class FieldExtractor(ABC):
    """Contrato do extrator de campos."""

    model_name: str = ""

    @abstractmethod
    def extract_fields(
        self,
        request: ExtractRequest,
        deadline: Optional[float] = None,
    ) -> Tuple[ReceiptFields, bytes]:
        """Devolve (campos, JSON bruto); levanta TransportError/SchemaValidationError."""

    def model_params(self) -> Dict[str, Any]:
        return {}


def image_to_attach(request: ExtractRequest, max_mb: int) -> Optional[str]:
    """
    Decide se a imagem original deve ir junto no prompt.

    Só anexa imagens (formato IMAGE) com confiança de OCR abaixo de 0.6. HEIC só
    é anexado via PNG já convertido no cache. Arquivos acima de max_mb ficam de fora.

    Returns:
        Caminho do arquivo a anexar ou None
    """
    if not request.file_path:
        return None
    if FileFormat.from_extension(request.file_path) != FileFormat.IMAGE:
        return None
    if request.prep_confidence >= IMAGE_CONFIDENCE_THRESHOLD:
        return None

    path = request.file_path
    if FileFormat.is_heic(path):
        if not (request.artifact_cache_dir and request.content_hash_hex):
            return None
        path = cached_png_path(request.artifact_cache_dir, request.content_hash_hex)

    if not os.path.isfile(path):
        return None
    if os.path.getsize(path) > max_mb * 1024 * 1024:
        return None
    return path


def image_data_url(path: str) -> str:
    """Lê a imagem e devolve um data URL base64."""
    mime_type, _ = mimetypes.guess_type(path)
    if not mime_type:
        ext = FileFormat.normalize_ext(path)
        mime_type = {"jpg": "image/jpeg", "jpeg": "image/jpeg", "png": "image/png"}.get(ext, "application/octet-stream")
    with open(path, "rb") as f:
        data = base64.b64encode(f.read()).decode("ascii")
    return f"data:{mime_type};base64,{data}"


class LLMFieldExtractor(FieldExtractor):
    """Extrator de campos baseado em chat completions."""

    def __init__(
        self,
        llm_service: LLMService,
        settings: LLMSettings,
        logger: Optional[logging.Logger] = None,
    ):
        self.llm_service = llm_service
        self.settings = settings
        self.model_name = settings.model
        self.logger = logger or logging.getLogger(__name__)

    def model_params(self) -> Dict[str, Any]:
        return {"temperature": self.settings.temperature, "vision": self.settings.enable_vision}

    def _user_message(self, request: ExtractRequest) -> Dict[str, Any]:
        attachment = None
        if self.settings.enable_vision:
            try:
                path = image_to_attach(request, self.settings.vision_max_mb)
                if path:
                    attachment = image_data_url(path)
            except OSError as e:
                self.logger.warning(f"⚠️ Não foi possível anexar a imagem {request.file_path}: {e}")
                attachment = None

        if attachment is None:
            return {"role": "user", "content": ReceiptPrompts.build_user_prompt(request)}

        self.logger.info(f"🖼️ Anexando imagem ao prompt (confiança OCR {request.prep_confidence:.2f})")
        return {
            "role": "user",
            "content": [
                {"type": "text", "text": ReceiptPrompts.build_user_prompt(request, image_attached=True)},
                {"type": "image_url", "image_url": {"url": attachment}},
            ],
        }

    def build_messages(self, request: ExtractRequest) -> List[Dict[str, Any]]:
        schema = build_schema(request.allowed_categories)
        return [
            {"role": "system", "content": ReceiptPrompts.build_system_prompt(request)},
            {"role": "system", "content": "JSON Schema:\n" + json.dumps(schema, indent=2)},
            self._user_message(request),
        ]

    def extract_fields(
        self,
        request: ExtractRequest,
        deadline: Optional[float] = None,
    ) -> Tuple[ReceiptFields, bytes]:
        """
        Extrai os campos do recibo.

        Args:
            request: Texto do OCR, dicas e contexto do perfil
            deadline: Prazo monotônico do job

        Returns:
            (ReceiptFields, JSON bruto possivelmente sanitizado)

        Raises:
            TransportError: Falha na chamada da API
            SchemaValidationError: Saída inválida mesmo após sanitização
        """
        start = time.monotonic()
        content = self.llm_service.chat_json(self.build_messages(request), deadline=deadline)
        raw = content.encode("utf-8")

        try:
            data = json.loads(content)
        except ValueError as e:
            self.logger.error(f"❌ Resposta da LLM não é JSON: {e}")
            raise SchemaValidationError(f"resposta da LLM não é JSON: {e}", raw_content=raw) from e
        if not isinstance(data, dict):
            raise SchemaValidationError("resposta da LLM não é um objeto JSON", raw_content=raw)

        adjustments: List[str] = []
        try:
            fields = validate_fields(data, request.allowed_categories)
        except ValidationError as first_error:
            if not self.settings.lenient_optional:
                self.logger.error(f"❌ Saída da LLM fora do schema: {first_error.error_count()} erro(s)")
                raise SchemaValidationError(f"saída fora do schema: {first_error}", raw_content=raw) from first_error

            try:
                data, adjustments = sanitize(data, request.allowed_categories)
            except (ArithmeticError, TypeError, ValueError) as e:
                self.logger.error(f"❌ Falha ao sanitizar a saída da LLM: {e}")
                raise SchemaValidationError(f"falha ao sanitizar a saída da LLM: {e}", raw_content=raw) from e
            self.logger.warning(f"⚠️ Saída da LLM sanitizada: {', '.join(adjustments) or 'sem ajustes'}")
            try:
                fields = validate_fields(data, request.allowed_categories)
            except ValidationError as e:
                elapsed_ms = int((time.monotonic() - start) * 1000)
                self.logger.error(f"❌ Saída da LLM inválida após sanitização ({elapsed_ms}ms): {e.error_count()} erro(s)")
                raise SchemaValidationError(f"saída fora do schema após sanitização: {e}", raw_content=raw) from e
            raw = json.dumps(data, ensure_ascii=False).encode("utf-8")

        fields.adjustments.extend(adjustments)
        return fields, raw
