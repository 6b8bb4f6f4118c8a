"""
Extração de texto de recibos (PDF, imagem, texto) com fallback para OCR.
"""

import glob
import logging
import os
import re
import shutil
import tempfile
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from config import OCRSettings
from models import FileFormat
from models.extraction import ExtractionResult
from services.command_runner import CommandRunner
from services.errors import ExternalToolError, JobTimeoutError, UnsupportedFormatError
from services.heic_converter import HEICConverter
from services.ocr_text import (
    blended_confidence,
    has_text_layer,
    heuristic_confidence,
    normalize,
    parse_tsv_confidence,
)

PAGE_SEPARATOR = "\n\f\n"

_RE_PAGE_NUMBER = re.compile(r"-(\d+)\.png$")


class TextExtractor(ABC):
    """Contrato do extrator de texto."""

    @abstractmethod
    def extract(
        self,
        path: str,
        content_hash_hex: Optional[str] = None,
        deadline: Optional[float] = None,
    ) -> ExtractionResult:
        """Extrai o texto do arquivo; levanta UnsupportedFormatError/ExternalToolError."""


def _page_number(path: str) -> int:
    match = _RE_PAGE_NUMBER.search(path)
    return int(match.group(1)) if match else 0


class OCRTextExtractor(TextExtractor):
    """Extrator baseado em pdftotext, pdftoppm e tesseract."""

    def __init__(
        self,
        settings: OCRSettings,
        runner: Optional[CommandRunner] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.runner = runner or CommandRunner(logger=self.logger)
        self.heic = HEICConverter(settings.heic_converter, self.runner, logger=self.logger)

    def extract(
        self,
        path: str,
        content_hash_hex: Optional[str] = None,
        deadline: Optional[float] = None,
    ) -> ExtractionResult:
        """
        Extrai o texto conforme o formato do arquivo.

        Args:
            path: Caminho do arquivo
            content_hash_hex: SHA-256 do conteúdo (chave do cache HEIC)
            deadline: Prazo monotônico do job

        Returns:
            ExtractionResult com texto normalizado e confiança
        """
        start = time.monotonic()
        file_format = FileFormat.from_extension(path)
        if file_format is None:
            raise UnsupportedFormatError(f"formato não suportado: {os.path.basename(path)}")

        if file_format == FileFormat.PDF:
            result = self._extract_pdf(path, deadline)
        elif file_format == FileFormat.TXT:
            result = self._extract_txt(path)
        elif FileFormat.is_heic(path):
            result = self._extract_heic(path, content_hash_hex or "", deadline)
        else:
            result = self._extract_image(path, deadline)

        result.duration = time.monotonic() - start
        self.logger.info(
            f"📄 Texto extraído de {os.path.basename(path)}: método={result.method} "
            f"páginas={result.pages} confiança={result.confidence:.2f} ({result.duration:.2f}s)"
        )
        return result

    # ------------------------------------------------------------------ PDF

    def _extract_pdf(self, path: str, deadline: Optional[float]) -> ExtractionResult:
        warnings: List[str] = []
        try:
            stdout, _ = self.runner.run(
                [self.settings.pdftotext_bin, "-layout", "-enc", "UTF-8", "-eol", "unix", path, "-"],
                deadline=deadline,
            )
            raw = stdout.decode("utf-8", errors="replace")
        except JobTimeoutError:
            raise
        except ExternalToolError as e:
            # PDF corrompido ou protegido ainda pode ser rasterizado
            warnings.append(f"pdftotext: {e}")
            self.logger.warning(f"⚠️ pdftotext falhou em {os.path.basename(path)}, tentando OCR: {e}")
            raw = ""

        if has_text_layer(raw):
            text = normalize(raw)
            return ExtractionResult(
                text=text,
                pages=1 + raw.count("\f"),
                source_type=FileFormat.PDF,
                method="pdf-text",
                confidence=heuristic_confidence(text),
            )

        self.logger.info(f"PDF sem camada de texto, rasterizando: {os.path.basename(path)}")
        result = self._ocr_pdf_pages(path, deadline)
        result.warnings = warnings + result.warnings
        return result

    def _ocr_pdf_pages(self, path: str, deadline: Optional[float]) -> ExtractionResult:
        tmp_dir = tempfile.mkdtemp(prefix="rt-pdf-")
        try:
            prefix = os.path.join(tmp_dir, "page")
            self.runner.run(
                [self.settings.pdftoppm_bin, "-r", str(self.settings.dpi), "-png", path, prefix],
                deadline=deadline,
            )
            pages = sorted(glob.glob(f"{prefix}-*.png"), key=_page_number)
            if not pages:
                raise ExternalToolError(f"pdftoppm não gerou páginas para {os.path.basename(path)}")
            if self.settings.max_pages > 0:
                pages = pages[: self.settings.max_pages]

            texts: List[str] = []
            confidences: List[float] = []
            warnings: List[str] = []
            for page_path in pages:
                try:
                    text, confidence, page_warnings = self._ocr_image(page_path, deadline)
                except JobTimeoutError:
                    raise
                except ExternalToolError as e:
                    warnings.append(f"{os.path.basename(page_path)}: {e}")
                    self.logger.warning(f"⚠️ OCR falhou na página {page_path}: {e}")
                    continue
                texts.append(text)
                warnings.extend(page_warnings)
                if confidence > 0:
                    confidences.append(confidence)

            if not texts:
                raise ExternalToolError(f"OCR falhou em todas as páginas de {os.path.basename(path)}")
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)

        text = normalize(PAGE_SEPARATOR.join(texts))
        if confidences:
            confidence = sum(confidences) / len(confidences)
        else:
            confidence = heuristic_confidence(text)

        return ExtractionResult(
            text=text,
            pages=len(texts),
            source_type=FileFormat.PDF,
            method="pdf-ocr",
            language=self.settings.lang,
            confidence=confidence,
            warnings=warnings,
        )

    # --------------------------------------------------------------- Imagem

    def _extract_image(self, path: str, deadline: Optional[float]) -> ExtractionResult:
        text, confidence, warnings = self._ocr_image(path, deadline)
        return ExtractionResult(
            text=text,
            pages=1,
            source_type=FileFormat.IMAGE,
            method="image-ocr",
            language=self.settings.lang,
            confidence=confidence,
            warnings=warnings,
        )

    def _extract_heic(self, path: str, content_hash_hex: str, deadline: Optional[float]) -> ExtractionResult:
        png_path, cleanup = self.heic.to_png(
            path,
            cache_dir=self.settings.cache_dir,
            content_hash_hex=content_hash_hex,
            deadline=deadline,
        )
        try:
            return self._extract_image(png_path, deadline)
        finally:
            if cleanup is not None:
                cleanup()

    def _tessdata_args(self) -> List[str]:
        if self.settings.tessdata_dir:
            return ["--tessdata-dir", self.settings.tessdata_dir]
        return []

    def _ocr_image(self, path: str, deadline: Optional[float]) -> Tuple[str, float, List[str]]:
        """Roda o tesseract e devolve (texto, confiança combinada, avisos)."""
        stdout, _ = self.runner.run(
            [self.settings.tesseract_bin, path, "stdout", "-l", self.settings.lang] + self._tessdata_args(),
            deadline=deadline,
        )
        text = normalize(stdout.decode("utf-8", errors="replace"))

        warnings: List[str] = []
        ocr_confidence = 0.0
        if self.settings.use_tsv_confidence:
            args = [self.settings.tesseract_bin, path, "stdout", "-l", self.settings.lang]
            if self.settings.psm is not None:
                args += ["--psm", str(self.settings.psm)]
            if self.settings.oem is not None:
                args += ["--oem", str(self.settings.oem)]
            args += self._tessdata_args() + ["tsv"]
            try:
                tsv, _ = self.runner.run(args, deadline=deadline)
                ocr_confidence = parse_tsv_confidence(tsv.decode("utf-8", errors="replace")) or 0.0
            except JobTimeoutError:
                raise
            except ExternalToolError as e:
                warnings.append(f"tsv: {e}")
                self.logger.warning(f"⚠️ Confiança TSV indisponível para {os.path.basename(path)}: {e}")

        return text, blended_confidence(ocr_confidence, text), warnings

    # ---------------------------------------------------------------- Texto

    def _extract_txt(self, path: str) -> ExtractionResult:
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                raw = f.read()
        except OSError as e:
            raise ExternalToolError(f"falha ao ler {os.path.basename(path)}: {e}") from e
        text = normalize(raw)
        return ExtractionResult(
            text=text,
            pages=1,
            source_type=FileFormat.TXT,
            method="text",
            confidence=heuristic_confidence(text),
        )
