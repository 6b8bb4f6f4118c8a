"""
Testes do extrator de texto (PDF, imagem, HEIC, texto) com ferramentas externas simuladas.
"""
import os

import pytest

from config import OCRSettings
from services.errors import ExternalToolError, JobTimeoutError, UnsupportedFormatError
from services.heic_converter import HEICConverter, cached_png_path
from services.text_extractor import PAGE_SEPARATOR, OCRTextExtractor

RECEIPT_TEXT = "BLUE BOTTLE COFFEE\n2024-03-14\nLatte 5.50\nTOTAL USD 15.08\n"
TSV = (
    "level\tpage_num\tblock_num\tpar_num\tline_num\tword_num\tleft\ttop\twidth\theight\tconf\ttext\n"
    "5\t1\t1\t1\t1\t1\t0\t0\t10\t10\t95\tTOTAL\n"
    "5\t1\t1\t1\t1\t2\t0\t0\t10\t10\t85\t15.08\n"
)


def _settings(tmp_path, **overrides):
    values = {"cache_dir": str(tmp_path / "cache")}
    values.update(overrides)
    return OCRSettings(**values)


def _tesseract(args):
    if args[-1] == "tsv":
        return TSV.encode(), b""
    return RECEIPT_TEXT.encode(), b""


class TestPDF:
    def test_text_layer(self, tmp_path, fake_runner):
        runner = fake_runner(lambda args: (b"ACME SUPPLIES INVOICE\n2024-02-01\nTOTAL $ 42.00\n\fPage two", b""))
        extractor = OCRTextExtractor(_settings(tmp_path), runner=runner)

        result = extractor.extract(str(tmp_path / "invoice.pdf"))

        assert result.method == "pdf-text"
        assert result.pages == 2
        assert result.source_type == "PDF"
        assert runner.calls[0][:7] == ["pdftotext", "-layout", "-enc", "UTF-8", "-eol", "unix", str(tmp_path / "invoice.pdf")]
        assert 0.0 < result.confidence <= 1.0
        assert result.duration >= 0.0

    def test_scanned_pdf_falls_back_to_ocr(self, tmp_path, fake_runner):
        def handler(args):
            if args[0] == "pdftotext":
                return b"   \f  ", b""
            if args[0] == "pdftoppm":
                prefix = args[-1]
                for n in (1, 2, 10):
                    with open(f"{prefix}-{n}.png", "wb") as f:
                        f.write(b"png")
                return b"", b""
            return _tesseract(args)

        runner = fake_runner(handler)
        extractor = OCRTextExtractor(_settings(tmp_path, dpi=200), runner=runner)

        result = extractor.extract(str(tmp_path / "scan.pdf"))

        assert result.method == "pdf-ocr"
        assert result.pages == 3
        assert result.language == "eng"
        assert result.text.count(PAGE_SEPARATOR) == 2
        assert ["-r", "200"] == runner.calls[1][1:3]
        ocr_pages = [os.path.basename(c[1]) for c in runner.calls if c[0] == "tesseract" and c[-1] != "tsv"]
        assert ocr_pages == ["page-1.png", "page-2.png", "page-10.png"]
        assert 0.0 < result.confidence <= 1.0

    def test_max_pages_cap(self, tmp_path, fake_runner):
        def handler(args):
            if args[0] == "pdftotext":
                return b"", b""
            if args[0] == "pdftoppm":
                for n in (1, 2, 3):
                    open(f"{args[-1]}-{n}.png", "wb").close()
                return b"", b""
            return _tesseract(args)

        extractor = OCRTextExtractor(_settings(tmp_path, max_pages=1), runner=fake_runner(handler))
        assert extractor.extract(str(tmp_path / "scan.pdf")).pages == 1

    def test_no_rendered_pages(self, tmp_path, fake_runner):
        extractor = OCRTextExtractor(_settings(tmp_path), runner=fake_runner(lambda args: (b"", b"")))
        with pytest.raises(ExternalToolError):
            extractor.extract(str(tmp_path / "empty.pdf"))

    def test_pdftotext_failure_falls_back_to_ocr(self, tmp_path, fake_runner):
        def handler(args):
            if args[0] == "pdftotext":
                raise ExternalToolError("pdftotext saiu com código 1", command=args)
            if args[0] == "pdftoppm":
                open(f"{args[-1]}-1.png", "wb").close()
                return b"", b""
            return _tesseract(args)

        runner = fake_runner(handler)
        extractor = OCRTextExtractor(_settings(tmp_path), runner=runner)

        result = extractor.extract(str(tmp_path / "broken.pdf"))

        assert result.method == "pdf-ocr"
        assert "TOTAL USD 15.08" in result.text
        assert result.warnings[0].startswith("pdftotext: ")
        assert runner.programs()[:2] == ["pdftotext", "pdftoppm"]

    def test_pdftotext_and_rasterizer_failure(self, tmp_path, fake_runner):
        def handler(args):
            raise ExternalToolError(f"{args[0]} saiu com código 1", command=args)

        extractor = OCRTextExtractor(_settings(tmp_path), runner=fake_runner(handler))
        with pytest.raises(ExternalToolError) as excinfo:
            extractor.extract(str(tmp_path / "broken.pdf"))
        assert "pdftoppm" in str(excinfo.value)

    def test_pdftotext_timeout_is_not_retried(self, tmp_path, fake_runner):
        def handler(args):
            raise JobTimeoutError("prazo expirado", command=args)

        runner = fake_runner(handler)
        extractor = OCRTextExtractor(_settings(tmp_path), runner=runner)
        with pytest.raises(JobTimeoutError):
            extractor.extract(str(tmp_path / "slow.pdf"))
        assert runner.programs() == ["pdftotext"]

    def test_joined_pages_are_normalized(self, tmp_path, fake_runner):
        def handler(args):
            if args[0] == "pdftotext":
                return b"", b""
            if args[0] == "pdftoppm":
                for n in (1, 2):
                    open(f"{args[-1]}-{n}.png", "wb").close()
                return b"", b""
            if args[-1] == "tsv":
                return TSV.encode(), b""
            if args[1].endswith("page-1.png"):
                return b"  \n", b""  # capa em branco
            return RECEIPT_TEXT.encode(), b""

        extractor = OCRTextExtractor(_settings(tmp_path), runner=fake_runner(handler))
        result = extractor.extract(str(tmp_path / "scan.pdf"))

        assert result.pages == 2
        assert result.text == RECEIPT_TEXT.strip()


class TestImage:
    def test_image_with_tsv_confidence(self, tmp_path, fake_runner):
        runner = fake_runner(_tesseract)
        extractor = OCRTextExtractor(_settings(tmp_path, psm=6, oem=1, tessdata_dir="/data"), runner=runner)

        result = extractor.extract(str(tmp_path / "photo.JPG"))

        assert result.method == "image-ocr"
        assert result.source_type == "IMAGE"
        assert "TOTAL USD 15.08" in result.text
        text_call, tsv_call = runner.calls
        assert text_call[2:] == ["stdout", "-l", "eng", "--tessdata-dir", "/data"]
        assert tsv_call[-1] == "tsv"
        assert "--psm" in tsv_call and "--oem" in tsv_call
        # 0.7 * 0.90 (TSV) + 0.3 * heurística
        assert result.confidence > 0.7

    def test_tsv_failure_is_warning(self, tmp_path, fake_runner):
        def handler(args):
            if args[-1] == "tsv":
                raise ExternalToolError("tsv indisponível", command=args)
            return RECEIPT_TEXT.encode(), b""

        extractor = OCRTextExtractor(_settings(tmp_path), runner=fake_runner(handler))
        result = extractor.extract(str(tmp_path / "photo.png"))

        assert result.warnings
        assert result.confidence == pytest.approx(0.7)  # só heurística

    def test_tsv_disabled(self, tmp_path, fake_runner):
        runner = fake_runner(_tesseract)
        extractor = OCRTextExtractor(_settings(tmp_path, use_tsv_confidence=False), runner=runner)
        extractor.extract(str(tmp_path / "photo.png"))
        assert len(runner.calls) == 1

    def test_timeout_propagates(self, tmp_path, fake_runner):
        def handler(args):
            raise JobTimeoutError("prazo expirado", command=args)

        extractor = OCRTextExtractor(_settings(tmp_path), runner=fake_runner(handler))
        with pytest.raises(JobTimeoutError):
            extractor.extract(str(tmp_path / "photo.png"))


class TestHEIC:
    def _magick(self, args):
        if args[0] == "magick":
            with open(args[2], "wb") as f:
                f.write(b"converted")
            return b"", b""
        return _tesseract(args)

    def test_heic_is_converted_and_cached(self, tmp_path, fake_runner):
        runner = fake_runner(self._magick)
        settings = _settings(tmp_path)
        extractor = OCRTextExtractor(settings, runner=runner)

        result = extractor.extract(str(tmp_path / "IMG_0001.HEIC"), content_hash_hex="abc123")

        cached = cached_png_path(settings.cache_dir, "abc123")
        assert os.path.isfile(cached)
        assert result.method == "image-ocr"
        assert runner.calls[1][1] == cached

        # segunda extração reutiliza o cache sem chamar o conversor
        runner.calls.clear()
        extractor.extract(str(tmp_path / "IMG_0001.HEIC"), content_hash_hex="abc123")
        assert "magick" not in runner.programs()


class TestHEICConverter:
    def test_without_cache_returns_cleanup(self, tmp_path, fake_runner):
        def handler(args):
            with open(args[-1], "wb") as f:
                f.write(b"png")
            return b"", b""

        converter = HEICConverter("heif-convert", fake_runner(handler))
        path, cleanup = converter.to_png(str(tmp_path / "a.heic"))

        assert os.path.isfile(path)
        assert cleanup is not None
        cleanup()
        assert not os.path.exists(path)

    def test_sips_arguments(self, tmp_path, fake_runner):
        def handler(args):
            with open(args[-1], "wb") as f:
                f.write(b"png")
            return b"", b""

        runner = fake_runner(handler)
        HEICConverter("sips", runner).to_png(str(tmp_path / "a.heic"), str(tmp_path / "cache"), "ff00")
        assert runner.calls[0][:4] == ["sips", "-s", "format", "png"]
        assert runner.calls[0][5] == "--out"

    def test_existing_cache_is_not_overwritten(self, tmp_path, fake_runner):
        cache_dir = tmp_path / "cache"
        cache_dir.mkdir()
        cached = cache_dir / "beef.png"
        cached.write_bytes(b"original")
        runner = fake_runner(lambda args: (b"", b""))

        path, cleanup = HEICConverter("magick", runner).to_png("x.heic", str(cache_dir), "beef")

        assert path == str(cached)
        assert cleanup is None
        assert runner.calls == []
        assert cached.read_bytes() == b"original"

    def test_unknown_converter(self, tmp_path, fake_runner):
        with pytest.raises(ExternalToolError):
            HEICConverter("gimp", fake_runner(lambda args: (b"", b""))).to_png(str(tmp_path / "a.heic"))

    def test_missing_output(self, tmp_path, fake_runner):
        with pytest.raises(ExternalToolError):
            HEICConverter("magick", fake_runner(lambda args: (b"", b""))).to_png(str(tmp_path / "a.heic"))


class TestOtherFormats:
    def test_txt(self, tmp_path):
        path = tmp_path / "note.txt"
        path.write_text("Uber trip\r\n2024-05-01\r\nTotal $ 23.10\r\n", encoding="utf-8")
        result = OCRTextExtractor(_settings(tmp_path)).extract(str(path))
        assert result.method == "text"
        assert result.text == "Uber trip\n2024-05-01\nTotal $ 23.10"

    def test_unsupported(self, tmp_path, fake_runner):
        runner = fake_runner(lambda args: (b"", b""))
        with pytest.raises(UnsupportedFormatError):
            OCRTextExtractor(_settings(tmp_path), runner=runner).extract(str(tmp_path / "data.xlsx"))
        assert runner.calls == []
