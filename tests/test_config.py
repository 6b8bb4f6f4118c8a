"""
Testes da configuração e do setup de logs.
"""
import logging

import pytest

from config import Config, setup_logging


@pytest.fixture()
def valid_config(monkeypatch):
    monkeypatch.setattr(Config, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(Config, "HEIC_CONVERTER", "magick")
    monkeypatch.setattr(Config, "QUEUE_WORKERS", 4)
    monkeypatch.setattr(Config, "QUEUE_SIZE", 256)
    monkeypatch.setattr(Config, "MIN_MODEL_CONFIDENCE", 0.6)
    return Config


def test_valid_config(valid_config):
    assert valid_config.validate_config() == []


def test_missing_key_and_bad_values(valid_config, monkeypatch):
    monkeypatch.setattr(Config, "OPENAI_API_KEY", None)
    monkeypatch.setattr(Config, "HEIC_CONVERTER", "gimp")
    monkeypatch.setattr(Config, "QUEUE_WORKERS", 0)
    monkeypatch.setattr(Config, "MIN_MODEL_CONFIDENCE", 1.5)

    errors = valid_config.validate_config()

    assert len(errors) == 4
    assert any("OPENAI_API_KEY" in e for e in errors)
    assert any("gimp" in e for e in errors)


def test_settings_builders(valid_config, monkeypatch):
    monkeypatch.setattr(Config, "OCR_PSM", 6)
    monkeypatch.setattr(Config, "ARTIFACT_CACHE_DIR", "/var/cache/receipts")

    ocr = valid_config.ocr_settings()
    assert ocr.psm == 6
    assert ocr.cache_dir == "/var/cache/receipts"
    assert valid_config.llm_settings().api_key == "sk-test"
    assert valid_config.processor_settings().artifact_cache_dir == "/var/cache/receipts"


def test_setup_logging_writes_file(tmp_path):
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        setup_logging("DEBUG", str(tmp_path / "logs"))
        logging.getLogger("receipts.test").info("📥 teste de log")
        for handler in root.handlers:
            handler.flush()
        content = (tmp_path / "logs" / "pipeline.log").read_text(encoding="utf-8")
        assert "receipts.test - INFO - 📥 teste de log" in content
    finally:
        for handler in root.handlers[len(before):]:
            handler.close()
        root.handlers[:] = before
        root.setLevel(level)
