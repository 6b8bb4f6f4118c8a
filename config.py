"""
Configurações do pipeline de extração de recibos.
Todas as configurações sensíveis são carregadas de variáveis de ambiente.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Carrega variáveis de ambiente do arquivo .env (se existir)
load_dotenv()

HEIC_CONVERTERS = ("heif-convert", "magick", "sips")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: str) -> Optional[int]:
    value = os.getenv(name, default).strip()
    return int(value) if value else None


class OCRSettings(BaseModel):
    """Parâmetros das ferramentas externas de OCR/PDF."""

    pdftotext_bin: str = "pdftotext"
    pdftoppm_bin: str = "pdftoppm"
    tesseract_bin: str = "tesseract"
    lang: str = "eng"
    tessdata_dir: str = ""
    dpi: int = 300
    max_pages: int = 0
    psm: Optional[int] = None
    oem: Optional[int] = None
    use_tsv_confidence: bool = True
    heic_converter: str = "magick"
    cache_dir: str = "./tmp"


class LLMSettings(BaseModel):
    """Parâmetros da API de inferência (chat completions)."""

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    timeout: float = 45.0
    enable_vision: bool = True
    lenient_optional: bool = True
    vision_max_mb: int = 10


class ProcessorSettings(BaseModel):
    """Parâmetros do orquestrador."""

    min_confidence: float = 0.60
    artifact_cache_dir: str = "./tmp"
    timezone: str = ""


class Config:
    """Configurações da aplicação."""

    # Banco de dados (SQLite por padrão para desenvolvimento)
    DATABASE_URL: str = os.getenv('DATABASE_URL', os.getenv('DB_URL', 'sqlite:///receipts.db'))

    # Configurações da LLM
    OPENAI_API_KEY: Optional[str] = os.getenv('OPENAI_API_KEY')
    OPENAI_BASE_URL: str = os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1')
    OPENAI_MODEL: str = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
    OPENAI_TEMPERATURE: float = float(os.getenv('OPENAI_TEMPERATURE', '0'))
    OPENAI_TIMEOUT: float = float(os.getenv('OPENAI_TIMEOUT', '45'))  # segundos
    LLM_ENABLE_VISION: bool = _env_bool('LLM_ENABLE_VISION', 'true')
    LLM_LENIENT_OPTIONAL: bool = _env_bool('LLM_LENIENT_OPTIONAL', 'true')
    VISION_MAX_MB: int = int(os.getenv('VISION_MAX_MB', '10'))

    # Ferramentas de OCR
    PDFTOTEXT_BIN: str = os.getenv('PDFTOTEXT_BIN', 'pdftotext')
    PDFTOPPM_BIN: str = os.getenv('PDFTOPPM_BIN', 'pdftoppm')
    TESSERACT_BIN: str = os.getenv('TESSERACT_BIN', 'tesseract')
    TESSERACT_LANG: str = os.getenv('TESSERACT_LANG', 'eng')
    TESSDATA_PREFIX: str = os.getenv('TESSDATA_PREFIX', '')
    OCR_DPI: int = int(os.getenv('OCR_DPI', '300'))
    OCR_MAX_PAGES: int = int(os.getenv('OCR_MAX_PAGES', '0'))  # 0 = sem limite
    OCR_PSM: Optional[int] = _env_int('OCR_PSM', '')
    OCR_OEM: Optional[int] = _env_int('OCR_OEM', '')
    OCR_TSV_CONFIDENCE: bool = _env_bool('OCR_TSV_CONFIDENCE', 'true')
    HEIC_CONVERTER: str = os.getenv('HEIC_CONVERTER', 'magick')
    ARTIFACT_CACHE_DIR: str = os.getenv('ARTIFACT_CACHE_DIR', './tmp')

    # Revisão e contexto
    MIN_MODEL_CONFIDENCE: float = float(os.getenv('MIN_MODEL_CONFIDENCE', '0.60'))
    RECEIPT_TIMEZONE: str = os.getenv('RECEIPT_TIMEZONE', '')

    # Fila de processamento
    QUEUE_WORKERS: int = int(os.getenv('QUEUE_WORKERS', '4'))
    QUEUE_SIZE: int = int(os.getenv('QUEUE_SIZE', '256'))
    JOB_TIMEOUT_SECONDS: float = float(os.getenv('JOB_TIMEOUT_SECONDS', '180'))  # 3 minutos

    # Logs
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_DIR: str = os.getenv('LOG_DIR', 'logs')

    @classmethod
    def validate_config(cls) -> list[str]:
        """
        Valida se todas as configurações necessárias estão definidas.

        Returns:
            Lista de mensagens de erro se houver configurações inválidas.
        """
        errors = []

        if not cls.OPENAI_API_KEY:
            errors.append("OPENAI_API_KEY deve ser definida para a extração de campos")

        if cls.HEIC_CONVERTER not in HEIC_CONVERTERS:
            errors.append(f"HEIC_CONVERTER inválido: {cls.HEIC_CONVERTER} (use {', '.join(HEIC_CONVERTERS)})")

        if cls.QUEUE_WORKERS <= 0 or cls.QUEUE_SIZE <= 0:
            errors.append("QUEUE_WORKERS e QUEUE_SIZE devem ser positivos")

        if not 0.0 <= cls.MIN_MODEL_CONFIDENCE <= 1.0:
            errors.append("MIN_MODEL_CONFIDENCE deve estar entre 0 e 1")

        return errors

    @classmethod
    def ocr_settings(cls) -> OCRSettings:
        return OCRSettings(
            pdftotext_bin=cls.PDFTOTEXT_BIN,
            pdftoppm_bin=cls.PDFTOPPM_BIN,
            tesseract_bin=cls.TESSERACT_BIN,
            lang=cls.TESSERACT_LANG,
            tessdata_dir=cls.TESSDATA_PREFIX,
            dpi=cls.OCR_DPI,
            max_pages=cls.OCR_MAX_PAGES,
            psm=cls.OCR_PSM,
            oem=cls.OCR_OEM,
            use_tsv_confidence=cls.OCR_TSV_CONFIDENCE,
            heic_converter=cls.HEIC_CONVERTER,
            cache_dir=cls.ARTIFACT_CACHE_DIR,
        )

    @classmethod
    def llm_settings(cls) -> LLMSettings:
        return LLMSettings(
            api_key=cls.OPENAI_API_KEY or "",
            base_url=cls.OPENAI_BASE_URL,
            model=cls.OPENAI_MODEL,
            temperature=cls.OPENAI_TEMPERATURE,
            timeout=cls.OPENAI_TIMEOUT,
            enable_vision=cls.LLM_ENABLE_VISION,
            lenient_optional=cls.LLM_LENIENT_OPTIONAL,
            vision_max_mb=cls.VISION_MAX_MB,
        )

    @classmethod
    def processor_settings(cls) -> ProcessorSettings:
        return ProcessorSettings(
            min_confidence=cls.MIN_MODEL_CONFIDENCE,
            artifact_cache_dir=cls.ARTIFACT_CACHE_DIR,
            timezone=cls.RECEIPT_TIMEZONE,
        )


def setup_logging(level: str = "INFO", log_dir: Optional[str] = "logs") -> logging.Logger:
    """
    Configura o logger raiz (console + arquivo).

    Args:
        level: Nível de log (DEBUG, INFO, ...)
        log_dir: Diretório do arquivo pipeline.log; None desativa o arquivo

    Returns:
        Logger raiz configurado
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(
            os.path.join(log_dir, 'pipeline.log'),
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


# Instância global de configuração
config = Config()
