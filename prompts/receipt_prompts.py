"""
Prompts para extração de campos de recibos.
"""

from typing import List

from models.extraction import ExtractRequest

OCR_TEXT_LIMIT = 3000
OCR_HINT_LIMIT = 1000
TRUNCATION_MARKER = "\n…(truncated)"

# Critérios de desempate para categorias frequentemente confundidas
CATEGORY_RUBRIC = {
    "Cell Phone Service": "monthly mobile/cell plans and carrier bills (not internet-only plans).",
    "Home Office": "rent/utilities share, furniture or repairs for a home workspace.",
    "Internet": "home or office broadband/ISP bills; choose over Cell Phone Service when no mobile line is billed.",
    "Meals": "restaurants, coffee, food delivery and business meals (tips belong in 'tip').",
    "Office Equipment": "durable hardware such as computers, monitors, printers, phones bought outright.",
    "Office Supplies": "consumables such as paper, ink, pens, cables and small accessories.",
    "Professional Development": "courses, books, certifications, conferences and training.",
    "Shipping Expenses": "postage, couriers and shipping labels (not shipping lines inside a product purchase).",
    "Software Subscription": "SaaS, apps, cloud services and recurring software licences.",
    "Travel Expenses": "flights, hotels, rideshare/taxi, car rental, parking and tolls while travelling.",
    "Other": "only when no other category clearly applies.",
}


def truncate_text(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) > limit:
        return text[:limit] + TRUNCATION_MARKER
    return text


class ReceiptPrompts:
    """Prompts para extração estruturada de recibos."""

    @staticmethod
    def category_rubric(categories: List[str]) -> str:
        """Linhas de desempate apenas para as categorias permitidas."""
        lines = [f"- {name}: {CATEGORY_RUBRIC[name]}" for name in categories if name in CATEGORY_RUBRIC]
        if not lines:
            return ""
        return "Category guidance:\n" + "\n".join(lines)

    @staticmethod
    def build_system_prompt(request: ExtractRequest) -> str:
        """
        Monta a mensagem de sistema.

        Inclui moeda padrão, categorias permitidas com critérios de desempate,
        contexto de negócio do perfil e regras de formatação.
        """
        if request.allowed_categories:
            category_line = "Allowed categories (enum): " + ", ".join(request.allowed_categories) + "."
        else:
            category_line = "Category must be a short, sensible label if present."

        default_currency = request.default_currency.strip() or "USD"

        context_bits = []
        profile = request.profile
        if profile.name.strip():
            context_bits.append(f"Profile: {profile.name.strip()}.")
        if profile.job_title.strip():
            context_bits.append(f"Job Title: {profile.job_title.strip()}.")
        if profile.job_description.strip():
            context_bits.append(f"Job Description: {profile.job_description.strip()}.")

        parts = [
            "You are a receipts parser. Return ONLY JSON that matches the provided JSON Schema.",
            "Use ISO-8601 dates (YYYY-MM-DD).",
            f"Currency must be a 3-letter ISO 4217 code; default to {default_currency} if uncertain.",
            category_line,
            "Business context: " + " ".join(context_bits),
            "For 'description', write a concise, tax-appropriate business need (about 8-16 words). "
            "Avoid personal names, addresses, or timestamps.",
            "If a tip appears, include it under 'tip'.",
            "If taxes appear, put them in 'tax' (never include taxes in 'other_fees').",
            "Sum non-tax, non-tip surcharges into 'other_fees' (e.g., booking, airport, regulatory).",
            "Include 'discount' if visible (positive amount representing the discount).",
            "Never output null. If a field is not present, omit it.",
        ]
        if request.timezone.strip():
            parts.append(f"If dates are ambiguous, prefer timezone: {request.timezone.strip()}.")
        if request.country_hint.strip():
            parts.append(f"The receipt was most likely issued in: {request.country_hint.strip()}.")

        prompt = " ".join(parts)
        rubric = ReceiptPrompts.category_rubric(request.allowed_categories)
        if rubric:
            prompt += "\n\n" + rubric
        return prompt

    @staticmethod
    def build_user_prompt(request: ExtractRequest, image_attached: bool = False) -> str:
        """Dicas de nome/pasta seguidas do texto do OCR (ou aviso de imagem anexada)."""
        lines = []
        if request.filename_hint.strip():
            lines.append(f"Filename: {request.filename_hint.strip()}")
        if request.folder_hint.strip():
            lines.append(f"Folder path: {request.folder_hint.strip()}")

        body = "\n".join(lines) + "\n" if lines else ""
        ocr = request.ocr_text.strip()

        if image_attached:
            body += "\nThe receipt image is attached; read the fields from the image."
            if ocr:
                body += "\n\nLow-confidence OCR text (secondary hint):\n" + truncate_text(ocr, OCR_HINT_LIMIT)
            return body

        body += "\nOCR text (first ~3k chars):\n" + truncate_text(ocr, OCR_TEXT_LIMIT)
        return body
