"""
Keyword-based category assignment for imported transactions.

Each standard category carries a keyword list. A transaction's description and
merchant are searched (case-insensitive substring match) for those keywords,
and the standard category is resolved to the user's category of the same
name. Confidence is the share of the category's keywords that matched.
"""
from typing import Dict, List, Optional, Sequence

from money_saver.db.core import CategoryDB
from money_saver.models.category import CategoryMatch
from money_saver.logging_config import get_logger

logger = get_logger(__name__)

FALLBACK_CATEGORY = "Other"

STANDARD_CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "Housing": ["rent", "mortgage", "property", "hoa", "maintenance", "repair", "apartment", "landlord"],
    "Bills & Utilities": ["electric", "gas", "water", "internet", "phone", "cable", "utility", "bill",
                          "subscription"],
    "Food & Dining": ["restaurant", "grocery", "food", "dining", "cafe", "coffee", "lunch", "dinner", "breakfast",
                      "market", "supermarket", "whole foods", "safeway", "kroger", "trader joe"],
    "Travel & Lifestyle": ["hotel", "flight", "airline", "travel", "vacation", "airbnb", "uber", "lyft", "taxi",
                           "entertainment", "movie", "concert", "gym", "fitness"],
    "Shopping": ["amazon", "target", "walmart", "clothing", "shoes", "retail", "store", "mall", "electronics",
                 "purchase"],
    "Children": ["daycare", "childcare", "school supplies", "toys", "kids", "children", "baby", "diaper"],
    "Education": ["tuition", "school", "college", "university", "course", "textbook", "student", "education",
                  "learning"],
    "Health & Wellness": ["doctor", "hospital", "pharmacy", "medical", "health", "dental", "vision", "insurance",
                          "medication", "prescription", "clinic", "cvs", "walgreens"],
    "Financial": ["bank", "fee", "interest", "payment", "loan", "credit card", "investment", "transfer", "atm"],
    "Auto & Transport": ["gas", "fuel", "car", "auto", "vehicle", "insurance", "parking", "toll", "maintenance",
                         "oil change", "dmv", "registration"],
    "Business, Gifts & Donations": ["gift", "donation", "charity", "business", "office", "supplies", "professional",
                                    "consulting"],
    FALLBACK_CATEGORY: [],
}


def _find_by_name(categories: Sequence[CategoryDB], name: str) -> Optional[CategoryDB]:
    name = name.lower()
    return next((c for c in categories if c.name.lower() == name), None)


def get_all_matches(description: Optional[str], merchant: Optional[str],
                    categories: Sequence[CategoryDB]) -> List[CategoryMatch]:
    """Every standard category with at least one keyword hit that the user has, best first."""
    search_text = f"{description or ''} {merchant or ''}".lower()
    matches: List[CategoryMatch] = []

    for name, keywords in STANDARD_CATEGORY_KEYWORDS.items():
        if name == FALLBACK_CATEGORY:
            continue

        matched_keywords = [k for k in keywords if k.lower() in search_text]
        if not matched_keywords:
            continue

        category = _find_by_name(categories, name)
        if category is None:
            continue

        matches.append(CategoryMatch(
            category_id=category.id,
            category_name=category.name,
            confidence=len(matched_keywords) / len(keywords),
            matched_keywords=matched_keywords,
        ))

    # Stable sort keeps table order between equal scores
    return sorted(matches, key=lambda m: m.confidence, reverse=True)


def match_category(description: Optional[str], merchant: Optional[str],
                   categories: Sequence[CategoryDB]) -> Optional[CategoryDB]:
    """Best keyword match, else the user's "Other" category, else None."""
    matches = get_all_matches(description, merchant, categories)
    if matches:
        best = matches[0]
        logger.debug(f"'{description}' / '{merchant}' -> {best.category_name} ({best.confidence:.2f})")
        return next(c for c in categories if c.id == best.category_id)

    return _find_by_name(categories, FALLBACK_CATEGORY)


def batch_match_categories(rows: Sequence, categories: Sequence[CategoryDB]) -> List[Optional[CategoryDB]]:
    """Match many rows, each needing ``description`` and ``merchant`` attributes. Output keeps input order."""
    return [match_category(row.description, row.merchant, categories) for row in rows]
