#!/usr/bin/env python3
"""
CLI: Extração de campos de recibos (OCR + LLM) para arquivos locais ou já registrados
"""
import argparse
import json
import logging
import sys

from config import config, setup_logging
from database import SessionLocal, build_engine, create_session_factory, init_db
from models import JobStatus
from services.errors import PipelineError
from services.extraction_job_repository import ExtractionJobRepository
from services.field_extractor import LLMFieldExtractor
from services.file_repository import FileRepository
from services.llm_service import LLMService
from services.processor_queue import ProcessorQueue, ProcessRequest
from services.profile_repository import ProfileRepository
from services.receipt_processor import ReceiptProcessor
from services.receipt_repository import ReceiptRepository
from services.text_extractor import OCRTextExtractor


def _job_summary(jobs: ExtractionJobRepository, receipts: ReceiptRepository, file_id: str) -> dict:
    history = jobs.list_by_file(file_id)
    if not history:
        return {"file_id": file_id, "status": None}
    job = history[-1]
    summary = {
        "file_id": file_id,
        "job_id": job.id,
        "status": job.status,
        "method": job.model_name,
        "confidence": job.extraction_confidence,
        "needs_review": job.needs_review,
        "error": job.error_message,
    }
    receipt = receipts.get_current_by_file_id(file_id)
    if receipt is not None:
        summary["receipt"] = {
            "id": receipt.id,
            "merchant_name": receipt.merchant_name,
            "tx_date": receipt.tx_date.isoformat() if receipt.tx_date else None,
            "total": str(receipt.total) if receipt.total is not None else None,
            "currency_code": receipt.currency_code,
            "category": receipt.category_name,
        }
    return summary


def main():
    parser = argparse.ArgumentParser(description="Extrai campos estruturados de recibos (PDF/imagem/texto)")
    parser.add_argument("--file", dest="files", action="append", default=[], help="Arquivo local a registrar e processar (repetível)")
    parser.add_argument("--file-id", dest="file_ids", action="append", default=[], help="Id de arquivo já registrado (repetível)")
    parser.add_argument("--profile", default="default", help="Nome do perfil (default: default)")
    parser.add_argument("--job-title", default="", help="Cargo do perfil (contexto para a LLM)")
    parser.add_argument("--job-description", default="", help="Descrição do trabalho (contexto para a LLM)")
    parser.add_argument("--currency", default="USD", help="Moeda padrão do perfil (default: USD)")
    parser.add_argument("--workers", type=int, default=config.QUEUE_WORKERS, help=f"Workers da fila (default: {config.QUEUE_WORKERS})")
    parser.add_argument("--ocr-only", action="store_true", help="Executa apenas o OCR (sem LLM)")
    parser.add_argument("--inmem", action="store_true", help="Usa banco SQLite em memória")
    args = parser.parse_args()

    setup_logging(config.LOG_LEVEL, config.LOG_DIR)
    logger = logging.getLogger("cli_process")

    if not args.files and not args.file_ids:
        print("Informe ao menos um --file ou --file-id")
        sys.exit(1)

    errors = config.validate_config()
    if errors and not args.ocr_only:
        for error in errors:
            print(f"Configuração inválida: {error}")
        sys.exit(1)

    if args.inmem:
        engine = build_engine("sqlite://")
        session_factory = create_session_factory(engine)
        init_db(engine)
    else:
        session_factory = SessionLocal
        init_db()

    print("=== Extração de Recibos - CLI ===")
    print(f"Perfil: {args.profile} | Workers: {args.workers} | Modo: {'OCR' if args.ocr_only else 'OCR + LLM'}")

    files = FileRepository(session_factory)
    profiles = ProfileRepository(session_factory)
    jobs = ExtractionJobRepository(session_factory)
    receipts = ReceiptRepository(session_factory)

    try:
        profile = profiles.get_or_create_by_name(
            args.profile,
            job_title=args.job_title,
            job_description=args.job_description,
            default_currency=args.currency,
        )
        file_ids = list(args.file_ids)
        for path in args.files:
            file_ids.append(files.create(profile.id, path).id)
    except (PipelineError, OSError) as e:
        print(f"Erro ao registrar arquivos: {e}")
        sys.exit(1)

    llm_settings = config.llm_settings()
    processor = ReceiptProcessor(
        files=files,
        profiles=profiles,
        jobs=jobs,
        receipts=receipts,
        text_extractor=OCRTextExtractor(config.ocr_settings()),
        field_extractor=LLMFieldExtractor(LLMService(llm_settings), llm_settings),
        settings=config.processor_settings(),
    )

    if args.ocr_only:
        for file_id in file_ids:
            try:
                job_id, result = processor.run_ocr(file_id)
                print(f"[{file_id}] job={job_id} método={result.method} confiança={result.confidence:.2f}")
                print(result.text)
            except PipelineError as e:
                print(f"[{file_id}] Erro no OCR: {e}")
        return

    queue = ProcessorQueue(
        processor,
        workers=args.workers,
        queue_size=config.QUEUE_SIZE,
        job_timeout=config.JOB_TIMEOUT_SECONDS,
    )
    for file_id in file_ids:
        queue.enqueue(ProcessRequest(file_id=file_id))
    drained = queue.shutdown()
    logger.info(f"Estatísticas da fila: {queue.stats()}")

    summaries = [_job_summary(jobs, receipts, file_id) for file_id in file_ids]
    print(json.dumps(summaries, ensure_ascii=False, indent=2, default=str))

    if not drained or any(s.get("status") != JobStatus.PARSE_COMPLETE for s in summaries):
        sys.exit(1)


if __name__ == "__main__":
    main()
