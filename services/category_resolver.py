"""
Taxonomia de categorias de despesas e canonicalização de rótulos.
"""

from typing import List, Tuple

CELL_PHONE_SERVICE = "Cell Phone Service"
HOME_OFFICE = "Home Office"
INTERNET = "Internet"
MEALS = "Meals"
OFFICE_EQUIPMENT = "Office Equipment"
OFFICE_SUPPLIES = "Office Supplies"
PROFESSIONAL_DEVELOPMENT = "Professional Development"
SHIPPING_EXPENSES = "Shipping Expenses"
SOFTWARE_SUBSCRIPTION = "Software Subscription"
TRAVEL_EXPENSES = "Travel Expenses"
OTHER = "Other"

CATEGORIES = (
    CELL_PHONE_SERVICE,
    HOME_OFFICE,
    INTERNET,
    MEALS,
    OFFICE_EQUIPMENT,
    OFFICE_SUPPLIES,
    PROFESSIONAL_DEVELOPMENT,
    SHIPPING_EXPENSES,
    SOFTWARE_SUBSCRIPTION,
    TRAVEL_EXPENSES,
    OTHER,
)

SYNONYMS = {
    "cell phone": CELL_PHONE_SERVICE,
    "mobile plan": CELL_PHONE_SERVICE,
    "saas": SOFTWARE_SUBSCRIPTION,
    "subscription": SOFTWARE_SUBSCRIPTION,
    "uber": TRAVEL_EXPENSES,
    "lyft": TRAVEL_EXPENSES,
    "airline": TRAVEL_EXPENSES,
    "hotel": TRAVEL_EXPENSES,
    "taxi": TRAVEL_EXPENSES,
}

_BY_LOWER = {category.lower(): category for category in CATEGORIES}


def allowed_categories() -> List[str]:
    return list(CATEGORIES)


def canonicalize(label: str) -> Tuple[str, bool]:
    """
    Resolve um rótulo livre para a categoria canônica.

    Ordem: igualdade sem diferenciar maiúsculas, depois sinônimos, depois "Other".

    Returns:
        (categoria, reconhecida) - nunca devolve categoria vazia
    """
    normalized = (label or "").strip().lower()
    if not normalized:
        return OTHER, False
    if normalized in _BY_LOWER:
        return _BY_LOWER[normalized], True
    if normalized in SYNONYMS:
        return SYNONYMS[normalized], True
    return OTHER, False
