"""
Normalização de texto de OCR e cálculo de confiança.
"""

import re
from typing import Optional

_RE_CRLF = re.compile(r"\r\n?")
_RE_TABS = re.compile(r"\t+")
_RE_MULTI_SPACE = re.compile(r" {2,}")
_RE_MULTI_BLANK = re.compile(r"\n{3,}")
_RE_BOX_NOISE = re.compile(r"(?m)^[ ]*[_\-=─━│|]{3,}[ ]*$")
# "0" isolado seguido de um dígito (ex.: "05" lido no lugar de "O5")
_RE_O0_ARTIFACT = re.compile(r"(?<!\S)0([1-9])(?!\S)")

_RE_DATE = re.compile(r"\b20\d{2}[-/.]\d{1,2}[-/.]\d{1,2}\b|\b\d{1,2}[-/.]\d{1,2}[-/.]20\d{2}\b")
_RE_CURRENCY = re.compile(r"\b(usd|eur|gbp|cad|aud|inr|jpy)\b|[$£€]")
_RE_AMOUNT = re.compile(r"\b\d{1,3}(,\d{3})*(\.\d{2})\b|\b\d+\.\d{2}\b")

MIN_PDF_TEXT_CHARS = 20
TSV_MIN_COLUMNS = 12
TSV_CONF_COLUMN = 10  # level page block par line word left top width height conf text


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def normalize(text: str) -> str:
    """
    Normaliza texto de OCR mantendo as quebras de linha.

    Aplicar duas vezes produz o mesmo resultado.
    """
    if not text:
        return ""
    text = _RE_CRLF.sub("\n", text)
    text = _RE_TABS.sub(" ", text)
    text = _RE_MULTI_SPACE.sub(" ", text)
    text = "\n".join(line.rstrip(" ") for line in text.split("\n"))
    text = _RE_BOX_NOISE.sub("", text)
    text = _RE_MULTI_BLANK.sub("\n\n", text)
    text = _RE_O0_ARTIFACT.sub(r"O\1", text)
    return text.strip()


def heuristic_confidence(text: str) -> float:
    """
    Confiança estimada pelo conteúdo: data, moeda, valor e tamanho.

    Returns:
        Valor entre 0 e 1
    """
    score = 0.2
    lowered = text.lower()
    if _RE_DATE.search(text):
        score += 0.2
    if _RE_CURRENCY.search(lowered):
        score += 0.15
    if _RE_AMOUNT.search(text):
        score += 0.15
    if len(text) > 120:
        score += 0.1
    return clamp01(score)


def blended_confidence(ocr_confidence: float, text: str) -> float:
    """70% confiança do OCR + 30% heurística; só heurística se o OCR não informou."""
    heuristic = heuristic_confidence(text)
    if ocr_confidence > 0:
        return clamp01(0.7 * ocr_confidence + 0.3 * heuristic)
    return heuristic


def parse_tsv_confidence(tsv: str) -> Optional[float]:
    """
    Média das confianças por palavra da saída TSV do tesseract.

    Ignora o cabeçalho, linhas incompletas e confianças vazias ou -1.

    Returns:
        Média em [0, 1] ou None se não houver palavras
    """
    total = 0.0
    count = 0
    for index, line in enumerate(tsv.splitlines()):
        if index == 0:
            continue
        columns = line.split("\t")
        if len(columns) < TSV_MIN_COLUMNS:
            continue
        raw = columns[TSV_CONF_COLUMN].strip()
        if raw in ("", "-1"):
            continue
        try:
            value = float(raw)
        except ValueError:
            continue
        if value < 0:
            continue
        total += value
        count += 1
    if count == 0:
        return None
    return clamp01(total / count / 100.0)


def has_text_layer(text: str) -> bool:
    """Camada de texto do PDF é útil se tiver pelo menos 20 caracteres não-brancos."""
    return sum(1 for ch in text if not ch.isspace()) >= MIN_PDF_TEXT_CHARS
