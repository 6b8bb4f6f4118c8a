"""
Persistência da máquina de estados dos jobs de extração.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models import ExtractionJob, JobStatus
from models.extraction import ExtractionResult
from services.errors import InvalidTransitionError, PersistenceError, RecordNotFoundError


class ExtractionJobRepository:
    """
    Repositório de jobs de extração.

    Toda mudança de status é um compare-and-set sobre o status atual, validada
    contra JobStatus.TRANSITIONS.
    """

    def __init__(self, session_factory: sessionmaker, logger: Optional[logging.Logger] = None):
        self.session_factory = session_factory
        self.logger = logger or logging.getLogger(__name__)

    def create(self, file_id: str, profile_id: str, file_format: str) -> ExtractionJob:
        session = self.session_factory()
        try:
            job = ExtractionJob(
                file_id=file_id,
                profile_id=profile_id,
                format=file_format,
                status=JobStatus.RUNNING,
                started_at=datetime.utcnow(),
            )
            session.add(job)
            session.commit()
            self.logger.info(f"🆕 Job {job.id} criado para arquivo {file_id} ({file_format})")
            return job
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"falha ao criar job para {file_id}: {e}") from e
        finally:
            session.close()

    def get_by_id(self, job_id: str) -> ExtractionJob:
        session = self.session_factory()
        try:
            job = session.get(ExtractionJob, job_id)
        finally:
            session.close()
        if job is None:
            raise RecordNotFoundError(f"job não encontrado: {job_id}", job_id=job_id)
        return job

    def list_by_file(self, file_id: str) -> List[ExtractionJob]:
        session = self.session_factory()
        try:
            return (
                session.query(ExtractionJob)
                .filter_by(file_id=file_id)
                .order_by(ExtractionJob.started_at)
                .all()
            )
        finally:
            session.close()

    def _transition(self, job_id: str, target: str, values: Dict[str, Any], expected: Optional[str] = None) -> None:
        session = self.session_factory()
        try:
            job = session.get(ExtractionJob, job_id)
            if job is None:
                raise RecordNotFoundError(f"job não encontrado: {job_id}", job_id=job_id)

            current = job.status
            if expected is not None and current != expected:
                raise InvalidTransitionError(
                    f"job {job_id} está em {current}, esperado {expected}", job_id=job_id
                )
            if not JobStatus.can_transition(current, target):
                raise InvalidTransitionError(f"transição inválida {current} -> {target}", job_id=job_id)

            values = dict(values, status=target)
            updated = (
                session.query(ExtractionJob)
                .filter_by(id=job_id, status=current)
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                session.rollback()
                raise InvalidTransitionError(
                    f"job {job_id} mudou de status durante {current} -> {target}", job_id=job_id
                )
            session.commit()
            self.logger.debug(f"Job {job_id}: {current} -> {target}")
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"falha ao atualizar job {job_id}: {e}", job_id=job_id) from e
        finally:
            session.close()

    def record_ocr(self, job_id: str, result: ExtractionResult, needs_review: bool) -> None:
        """RUNNING -> OCR_COMPLETE com texto, método, confiança e parâmetros do OCR."""
        self._transition(
            job_id,
            JobStatus.OCR_COMPLETE,
            {
                "ocr_text": result.text,
                "extraction_confidence": result.confidence,
                "needs_review": needs_review,
                "model_name": result.method,
                "model_params": json.dumps({"lang": result.language}),
            },
            expected=JobStatus.RUNNING,
        )

    def complete_parse(
        self,
        job_id: str,
        receipt_id: str,
        extracted_json: str,
        needs_review: bool,
        model_name: str,
        model_params: Dict[str, Any],
    ) -> None:
        """OCR_COMPLETE -> PARSE_COMPLETE, vinculando o recibo gerado."""
        self._transition(
            job_id,
            JobStatus.PARSE_COMPLETE,
            {
                "receipt_id": receipt_id,
                "extracted_json": extracted_json,
                "needs_review": needs_review,
                "model_name": model_name,
                "model_params": json.dumps(model_params),
                "finished_at": datetime.utcnow(),
            },
            expected=JobStatus.OCR_COMPLETE,
        )

    def mark_failed(self, job_id: str, error_message: str, extracted_json: Optional[str] = None) -> None:
        """
        RUNNING/OCR_COMPLETE -> FAILED.

        Args:
            job_id: Id do job
            error_message: Mensagem do erro
            extracted_json: Saída bruta da LLM quando a falha foi no parse ("" se nada foi recebido)
        """
        values: Dict[str, Any] = {
            "error_message": error_message,
            "finished_at": datetime.utcnow(),
        }
        if extracted_json is not None:
            values["extracted_json"] = extracted_json
        self._transition(job_id, JobStatus.FAILED, values)
        self.logger.warning(f"⚠️ Job {job_id} falhou: {error_message}")
