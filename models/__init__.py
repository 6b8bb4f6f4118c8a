"""Models package para o pipeline de extração de recibos."""

from __future__ import annotations

from typing import Optional


class JobStatus:
    RUNNING = "RUNNING"
    OCR_COMPLETE = "OCR_COMPLETE"
    PARSE_COMPLETE = "PARSE_COMPLETE"
    FAILED = "FAILED"

    # Transições permitidas (PARSE_COMPLETE e FAILED são terminais)
    TRANSITIONS = {
        RUNNING: (OCR_COMPLETE, FAILED),
        OCR_COMPLETE: (PARSE_COMPLETE, FAILED),
        PARSE_COMPLETE: (),
        FAILED: (),
    }

    @classmethod
    def can_transition(cls, current: str, target: str) -> bool:
        return target in cls.TRANSITIONS.get(current, ())

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TRANSITIONS and not cls.TRANSITIONS[status]


class FileFormat:
    PDF = "PDF"
    IMAGE = "IMAGE"
    TXT = "TXT"

    EXTENSIONS = {
        "pdf": PDF,
        "jpg": IMAGE,
        "jpeg": IMAGE,
        "png": IMAGE,
        "tif": IMAGE,
        "tiff": IMAGE,
        "bmp": IMAGE,
        "gif": IMAGE,
        "webp": IMAGE,
        "heic": IMAGE,
        "heif": IMAGE,
        "heics": IMAGE,
        "heifs": IMAGE,
        "txt": TXT,
    }

    HEIC_EXTENSIONS = ("heic", "heif", "heics", "heifs")

    @staticmethod
    def normalize_ext(ext_or_path: str) -> str:
        """'.HEIC', 'HEIC' ou 'foto.heic' -> 'heic'."""
        value = (ext_or_path or "").strip().lower()
        if "." in value:
            value = value.rsplit(".", 1)[1]
        return value

    @classmethod
    def from_extension(cls, ext_or_path: str) -> Optional[str]:
        return cls.EXTENSIONS.get(cls.normalize_ext(ext_or_path))

    @classmethod
    def is_heic(cls, ext_or_path: str) -> bool:
        return cls.normalize_ext(ext_or_path) in cls.HEIC_EXTENSIONS


# Importar modelos persistidos
from .receipt_models import Profile, ReceiptFile, ExtractionJob, Receipt

__all__ = [
    "JobStatus",
    "FileFormat",
    "Profile",
    "ReceiptFile",
    "ExtractionJob",
    "Receipt",
]
