"""
JSON Schema dos campos de recibo, validação e sanitização tolerante da saída da LLM.
"""

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

from models.extraction import MONEY_FIELDS, ReceiptFields
from services.category_resolver import OTHER, canonicalize

ALLOWED_KEYS = tuple(ReceiptFields.model_fields.keys())

# Sinônimos comuns devolvidos pelo modelo -> campo do schema
FIELD_RENAMES = (
    ("shipping_fee", "other_fees"),
    ("shipping_fees", "other_fees"),
    ("fees", "other_fees"),
    ("service_fee", "other_fees"),
    ("merchant", "merchant_name"),
    ("date", "tx_date"),
    ("currency", "currency_code"),
)

CATEGORY_FALLBACK = "category(fallback)"

# símbolos, códigos ISO e espaços ao redor do valor
_RE_CURRENCY_NOISE = re.compile(r"[\s$£€¥]")
_RE_CURRENCY_CODE = re.compile(r"^[A-Za-z]{3}|[A-Za-z]{3}$")
_RE_PLAIN_AMOUNT = re.compile(r"^-?\d+(\.\d+)?$")
# separador de milhar só em grupos completos: 1,200 ou 12,345,678.90
_RE_GROUPED_AMOUNT = re.compile(r"^-?\d{1,3}(,\d{3})+(\.\d+)?$")
_TWO_PLACES = Decimal("0.01")


def _strip_schema(node: Any) -> None:
    """Remove títulos/defaults do pydantic e colapsa Optional[X] em X (a LLM nunca envia null)."""
    if isinstance(node, dict):
        node.pop("title", None)
        if "default" in node and node["default"] is None:
            node.pop("default")
        variants = node.get("anyOf")
        if isinstance(variants, list):
            non_null = [v for v in variants if v.get("type") != "null"]
            if len(non_null) == 1:
                node.pop("anyOf")
                node.update(non_null[0])
        for value in node.values():
            _strip_schema(value)
    elif isinstance(node, list):
        for item in node:
            _strip_schema(item)


def build_schema(allowed_categories: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """
    JSON Schema enviado à LLM.

    Args:
        allowed_categories: Taxonomia; quando informada, vira enum em "category"

    Returns:
        Schema (dict) com additionalProperties=false
    """
    schema = ReceiptFields.model_json_schema()
    _strip_schema(schema)
    schema["additionalProperties"] = False
    if allowed_categories:
        schema["properties"]["category"]["enum"] = list(allowed_categories)
    return schema


def validate_fields(data: Dict[str, Any], allowed_categories: Optional[Sequence[str]] = None) -> ReceiptFields:
    """Valida o documento; levanta pydantic.ValidationError se inválido."""
    return ReceiptFields.model_validate(
        data,
        context={"allowed_categories": list(allowed_categories or [])},
    )


def _coerce_money(value: Any) -> Optional[str]:
    """
    Número ou texto -> string com duas casas; None se não for um valor.

    Aceita apenas "1234.5" ou "1,234.50" (milhar em grupos de três) depois de
    remover símbolos e códigos de moeda. Vírgula decimal, notação científica ou
    qualquer outra forma ambígua devolve None (campo descartado).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        text = repr(value) if isinstance(value, float) else str(value)
        if "e" in text.lower():
            text = f"{value:f}"
    elif isinstance(value, str):
        text = _RE_CURRENCY_CODE.sub("", _RE_CURRENCY_NOISE.sub("", value))
        if _RE_GROUPED_AMOUNT.match(text):
            text = text.replace(",", "")
        elif not _RE_PLAIN_AMOUNT.match(text):
            return None
    else:
        return None
    try:
        return str(Decimal(text).quantize(_TWO_PLACES))
    except InvalidOperation:
        return None


def _coerce_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if 0.0 <= number <= 1.0:
        return number
    return None


def sanitize(
    data: Dict[str, Any],
    allowed_categories: Optional[Sequence[str]] = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Corrige a saída da LLM campo a campo, apenas para chaves conhecidas.

    Args:
        data: Documento decodificado
        allowed_categories: Taxonomia usada para corrigir "category"

    Returns:
        (documento sanitizado, lista de ajustes aplicados)
    """
    doc = dict(data)
    adjustments: List[str] = []

    for source, target in FIELD_RENAMES:
        if source in doc:
            value = doc.pop(source)
            if target not in doc:
                doc[target] = value
            adjustments.append(f"{source}->{target}")

    for key in list(doc.keys()):
        if key not in ALLOWED_KEYS:
            doc.pop(key)
            adjustments.append(f"{key}(unknown)")

    for key, value in list(doc.items()):
        if isinstance(value, str):
            doc[key] = value.strip()

    for key in MONEY_FIELDS:
        if key not in doc:
            continue
        coerced = _coerce_money(doc[key])
        if coerced is None:
            doc.pop(key)
            adjustments.append(f"{key}(dropped)")
        elif coerced != doc[key]:
            doc[key] = coerced
            adjustments.append(f"{key}(coerced)")

    if isinstance(doc.get("currency_code"), str):
        doc["currency_code"] = doc["currency_code"].upper()

    if "payment_method" in doc:
        method = doc["payment_method"]
        if isinstance(method, str) and method:
            doc["payment_method"] = method.upper().replace(" ", "_")
        else:
            doc.pop("payment_method")
            adjustments.append("payment_method(dropped)")

    if "payment_last4" in doc:
        digits = re.sub(r"\D", "", str(doc["payment_last4"] or ""))
        if len(digits) >= 4:
            doc["payment_last4"] = digits[-4:]
        else:
            doc.pop("payment_last4")
            adjustments.append("payment_last4(short)")

    if "confidence" in doc:
        confidence = _coerce_confidence(doc["confidence"])
        if confidence is None:
            doc.pop("confidence")
            adjustments.append("confidence(dropped)")
        else:
            doc["confidence"] = confidence

    if doc.get("description") in (None, ""):
        doc.pop("description", None)

    if allowed_categories:
        category = doc.get("category")
        if not isinstance(category, str) or category not in allowed_categories:
            canonical, matched = canonicalize(category if isinstance(category, str) else "")
            if matched and canonical in allowed_categories:
                doc["category"] = canonical
                adjustments.append("category(canonical)")
            elif OTHER in allowed_categories:
                doc["category"] = OTHER
                adjustments.append(CATEGORY_FALLBACK)

    return doc, adjustments
