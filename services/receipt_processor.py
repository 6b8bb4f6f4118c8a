"""
Orquestração do processamento de um arquivo de recibo: OCR -> LLM -> recibo versionado.
"""

import logging
import os
from typing import Optional, Tuple

from config import ProcessorSettings
from models import ExtractionJob, FileFormat, JobStatus, ReceiptFile
from models.extraction import (
    IMAGE_CONFIDENCE_THRESHOLD,
    ExtractionResult,
    ExtractRequest,
    ProfileContext,
    ReceiptFields,
)
from services.category_resolver import allowed_categories, canonicalize
from services.errors import InvalidTransitionError, PipelineError, UnsupportedFormatError
from services.extraction_job_repository import ExtractionJobRepository
from services.field_extractor import FieldExtractor
from services.file_repository import FileRepository
from services.profile_repository import ProfileRepository
from services.receipt_repository import CreateReceiptRequest, ReceiptRepository
from services.receipt_schema import CATEGORY_FALLBACK
from services.text_extractor import TextExtractor


def ocr_needs_review(file_format: str, confidence: float) -> bool:
    """Imagem com confiança de OCR informada mas abaixo do limiar."""
    return file_format == FileFormat.IMAGE and 0 < confidence < IMAGE_CONFIDENCE_THRESHOLD


def fields_need_review(fields: ReceiptFields, category_matched: bool, min_confidence: float) -> bool:
    """Campos obrigatórios vazios, categoria desconhecida ou confiança do modelo baixa."""
    if not category_matched or CATEGORY_FALLBACK in fields.adjustments:
        return True
    if not fields.merchant_name.strip() or not fields.tx_date.strip() or not fields.total.strip():
        return True
    if fields.confidence is not None and 0 < fields.confidence < min_confidence:
        return True
    return False


class ReceiptProcessor:
    """Orquestrador das etapas de extração de um arquivo."""

    def __init__(
        self,
        files: FileRepository,
        profiles: ProfileRepository,
        jobs: ExtractionJobRepository,
        receipts: ReceiptRepository,
        text_extractor: TextExtractor,
        field_extractor: FieldExtractor,
        settings: Optional[ProcessorSettings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Inicializa o processador de recibos.

        Args:
            files: Repositório de arquivos
            profiles: Repositório de perfis
            jobs: Repositório de jobs de extração
            receipts: Repositório de recibos
            text_extractor: Extrator de texto/OCR
            field_extractor: Extrator de campos (LLM)
            settings: Limiar de confiança, diretório de cache e fuso horário
            logger: Logger (opcional)
        """
        self.files = files
        self.profiles = profiles
        self.jobs = jobs
        self.receipts = receipts
        self.text_extractor = text_extractor
        self.field_extractor = field_extractor
        self.settings = settings or ProcessorSettings()
        self.logger = logger or logging.getLogger(__name__)

    def process_file(self, file_id: str, deadline: Optional[float] = None) -> str:
        """
        Processa um arquivo de ponta a ponta.

        Args:
            file_id: Id do arquivo registrado
            deadline: Prazo monotônico do job (time.monotonic())

        Returns:
            Id do job criado

        Raises:
            UnsupportedFormatError: Extensão não suportada (nenhum job é criado)
            PipelineError: Falha em alguma etapa; o job fica FAILED e job_id vai no erro
        """
        receipt_file = self.files.get_by_id(file_id)
        job_id, _ = self._run_ocr(receipt_file, deadline)
        job = self.jobs.get_by_id(job_id)
        self._run_parse(job, receipt_file, deadline)
        return job_id

    def run_ocr(self, file_id: str, deadline: Optional[float] = None) -> Tuple[str, ExtractionResult]:
        """Executa só a etapa de OCR; o job termina em OCR_COMPLETE."""
        receipt_file = self.files.get_by_id(file_id)
        return self._run_ocr(receipt_file, deadline)

    def run_parse(self, job_id: str, deadline: Optional[float] = None) -> str:
        """Executa a etapa de parse de um job em OCR_COMPLETE e devolve o id do recibo."""
        job = self.jobs.get_by_id(job_id)
        if job.status != JobStatus.OCR_COMPLETE:
            raise InvalidTransitionError(f"job {job_id} está em {job.status}; esperado OCR_COMPLETE", job_id=job_id)
        receipt_file = self.files.get_by_id(job.file_id)
        return self._run_parse(job, receipt_file, deadline)

    def _fail(self, job_id: str, error: Exception, extracted_json: Optional[str] = None) -> None:
        if isinstance(error, PipelineError):
            error.job_id = job_id
        try:
            self.jobs.mark_failed(job_id, str(error), extracted_json=extracted_json)
        except PipelineError as db_error:
            self.logger.error(f"❌ Não foi possível marcar o job {job_id} como FAILED: {db_error}")

    def _run_ocr(self, receipt_file: ReceiptFile, deadline: Optional[float]) -> Tuple[str, ExtractionResult]:
        file_format = FileFormat.from_extension(receipt_file.file_ext)
        if file_format is None:
            raise UnsupportedFormatError(f"formato não suportado: .{receipt_file.file_ext} ({receipt_file.id})")

        job = self.jobs.create(receipt_file.id, receipt_file.profile_id, file_format)
        self.logger.info(f"🚀 Job {job.id}: OCR de {receipt_file.filename or receipt_file.source_path}")

        try:
            result = self.text_extractor.extract(
                receipt_file.source_path,
                content_hash_hex=receipt_file.content_hash,
                deadline=deadline,
            )
        except Exception as e:
            self.logger.error(f"❌ Job {job.id}: falha no OCR: {e}")
            self._fail(job.id, e)
            raise

        needs_review = ocr_needs_review(file_format, result.confidence)
        for warning in result.warnings:
            self.logger.warning(f"⚠️ Job {job.id}: {warning}")
        try:
            self.jobs.record_ocr(job.id, result, needs_review)
        except PipelineError as e:
            self._fail(job.id, e)
            raise
        return job.id, result

    def _build_request(self, job: ExtractionJob, receipt_file: ReceiptFile) -> ExtractRequest:
        profile = self.profiles.get_by_id(receipt_file.profile_id)
        return ExtractRequest(
            ocr_text=job.ocr_text or "",
            filename_hint=receipt_file.filename or os.path.basename(receipt_file.source_path),
            folder_hint=os.path.dirname(receipt_file.source_path),
            allowed_categories=allowed_categories(),
            default_currency=profile.default_currency,
            prep_confidence=job.extraction_confidence or 0.0,
            file_path=receipt_file.source_path,
            content_hash_hex=receipt_file.content_hash,
            artifact_cache_dir=self.settings.artifact_cache_dir,
            profile=ProfileContext(
                name=profile.name,
                job_title=profile.job_title,
                job_description=profile.job_description,
            ),
            timezone=self.settings.timezone,
        )

    def _run_parse(self, job: ExtractionJob, receipt_file: ReceiptFile, deadline: Optional[float]) -> str:
        try:
            request = self._build_request(job, receipt_file)
            fields, raw = self.field_extractor.extract_fields(request, deadline=deadline)
        except Exception as e:
            raw_content = getattr(e, "raw_content", None) or b""
            self.logger.error(f"❌ Job {job.id}: falha na extração de campos: {e}")
            self._fail(job.id, e, extracted_json=raw_content.decode("utf-8", errors="replace"))
            raise

        raw_text = raw.decode("utf-8", errors="replace")
        category, matched = canonicalize(fields.category)
        if not matched:
            self.logger.warning(f"⚠️ Job {job.id}: categoria desconhecida {fields.category!r}, usando {category}")
        needs_review = job.needs_review or fields_need_review(fields, matched, self.settings.min_confidence)

        try:
            receipt = self.receipts.upsert_from_fields(
                CreateReceiptRequest(
                    profile_id=receipt_file.profile_id,
                    file_id=receipt_file.id,
                    file_path=receipt_file.source_path,
                    job_id=job.id,
                    fields=fields,
                    category_name=category,
                )
            )
            self.jobs.complete_parse(
                job.id,
                receipt.id,
                extracted_json=raw_text,
                needs_review=needs_review,
                model_name=self.field_extractor.model_name,
                model_params=self.field_extractor.model_params(),
            )
        except PipelineError as e:
            self.logger.error(f"❌ Job {job.id}: falha ao persistir o recibo: {e}")
            self._fail(job.id, e, extracted_json=raw_text)
            raise

        self.logger.info(
            f"✅ Job {job.id}: recibo {receipt.id} ({fields.merchant_name}, {fields.total} {fields.currency_code}, "
            f"{category}) revisão={needs_review}"
        )
        return receipt.id
