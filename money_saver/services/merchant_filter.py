"""
Merchant classification for retailer order linking.

Card statements show marketplace charges such as ``AMAZON MKTPL*AB12CD``,
``Amazon.com*NU7SY9GM0`` or ``AMZN Mktp US*2K4`` while the retailer's order
export lists each line item under the plain merchant ``Amazon``. Only the
marketplace charges can be parents; subscriptions and services never have
line items behind them.
"""
import re
from typing import Optional

LINE_ITEM_MERCHANT = "Amazon"

NON_LINKABLE_PATTERNS = (
    "prime",
    "grocery subscri",
    "music",
    "digital",
    "aws",
    "web services",
)

RETAILER_PATTERNS = ("amazon", "amzn")
MARKETPLACE_PATTERNS = ("mktpl", "mktp", ".com")

_ORDER_CODE = re.compile(r"\*[a-z0-9]", re.IGNORECASE)


def is_linkable_amazon_transaction(merchant: Optional[str]) -> bool:
    """True when the merchant looks like a marketplace charge that can own line items."""
    if not merchant or not merchant.strip():
        return False

    normalized = merchant.strip().lower()

    # Plain "Amazon" is a line item, never a charge
    if normalized == LINE_ITEM_MERCHANT.lower():
        return False

    if any(pattern in normalized for pattern in NON_LINKABLE_PATTERNS):
        return False

    if not any(pattern in normalized for pattern in RETAILER_PATTERNS):
        return False

    has_marketplace = any(pattern in normalized for pattern in MARKETPLACE_PATTERNS)
    return has_marketplace and bool(_ORDER_CODE.search(normalized))


def is_line_item(merchant: Optional[str]) -> bool:
    return merchant == LINE_ITEM_MERCHANT
