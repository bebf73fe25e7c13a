"""Canonical expense categories and free-text normalisation.

Budgets and the alert pipeline only ever compare canonical names, so any
user or API supplied label goes through :func:`normalize_category` first.
"""

from typing import Dict, Optional, Tuple

FALLBACK_CATEGORY = "Others"

CATEGORIES: Tuple[str, ...] = (
    "Groceries",
    "Transport",
    "Dining Out",
    "Entertainment",
    "Shopping",
    "Utilities",
    "Housing",
    "Healthcare",
    "Personal",
    "Education",
    "Travel",
    "Gifts",
    "Electronics",
    "Insurance",
    "Savings",
    FALLBACK_CATEGORY,
)

# Checked in order, first substring hit wins
KEYWORDS: Dict[str, str] = {
    "food": "Groceries",
    "grocery": "Groceries",
    "school": "Education",
    "bills": "Utilities",
    "transportation": "Transport",
    "flight": "Travel",
    "trip": "Travel",
    "movie": "Entertainment",
    "dining": "Dining Out",
    "restaurant": "Dining Out",
    "home": "Housing",
    "rent": "Housing",
    "health": "Healthcare",
    "doctor": "Healthcare",
    "medicine": "Healthcare",
    "tool": "Others",
    "clothes": "Shopping",
    "clothing": "Shopping",
    "gift": "Gifts",
    "present": "Gifts",
    "electronic": "Electronics",
    "gadget": "Electronics",
    "device": "Electronics",
    "insurance": "Insurance",
    "policy": "Insurance",
    "savings": "Savings",
    "investment": "Savings",
}

_BY_LOWER = {name.lower(): name for name in CATEGORIES}


def normalize_category(raw: Optional[str]) -> str:
    """Map a free-text label onto one of :data:`CATEGORIES`.

    >>> normalize_category("groceries")
    'Groceries'
    >>> normalize_category("Restaurant bill")
    'Dining Out'
    >>> normalize_category("???")
    'Others'
    """
    if not raw:
        return FALLBACK_CATEGORY
    text = str(raw).strip().lower()
    if text in _BY_LOWER:
        return _BY_LOWER[text]
    for keyword, category in KEYWORDS.items():
        if keyword in text:
            return category
    return FALLBACK_CATEGORY
