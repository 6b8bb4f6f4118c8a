"""
Pacote de serviços do pipeline de extração de recibos.
"""

from .llm_service import LLMService
from .text_extractor import TextExtractor, OCRTextExtractor
from .field_extractor import FieldExtractor, LLMFieldExtractor
from .extraction_job_repository import ExtractionJobRepository
from .receipt_repository import ReceiptRepository, CreateReceiptRequest
from .file_repository import FileRepository
from .profile_repository import ProfileRepository
from .receipt_processor import ReceiptProcessor
from .processor_queue import ProcessorQueue, ProcessRequest

__all__ = [
    'LLMService',
    'TextExtractor',
    'OCRTextExtractor',
    'FieldExtractor',
    'LLMFieldExtractor',
    'ExtractionJobRepository',
    'ReceiptRepository',
    'CreateReceiptRequest',
    'FileRepository',
    'ProfileRepository',
    'ReceiptProcessor',
    'ProcessorQueue',
    'ProcessRequest',
]
