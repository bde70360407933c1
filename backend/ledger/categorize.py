"""
CategoryMapper - Rule-Based Transaction Categorization Engine.

Provides transparent, deterministic categorization using keyword matching.
Rules are evaluated in list order and the first matching rule wins, no
matter how specific a later rule's keyword might be.

Categories assigned by the extraction capability take precedence; the
engine only fills rows that arrive without one.
"""
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .config import Config
from .schema import Transaction

UNKNOWN_INCOMING = "Unknown Incoming"
MISCELLANEOUS = "Miscellaneous"


@dataclass(frozen=True)
class CategoryRule:
    category: str
    keywords: Tuple[str, ...]
    income_only: bool = False

    def applies_to(self, amount: float) -> bool:
        return not self.income_only or amount > 0

    def matches(self, desc_lower: str) -> bool:
        return any(keyword in desc_lower for keyword in self.keywords)


# ─────────────────────────────────────────────────────────────
# Category Rules Configuration
# ─────────────────────────────────────────────────────────────
# This is the single source of truth for categorization.
# Rules are applied in order; first match wins.

CATEGORY_RULES: List[CategoryRule] = [
    CategoryRule("Salary & Income", (
        "salary", "wage", "payroll", "deposit", "income",
        "payment received", "transfer from", "credit interest", "dividend"
    ), income_only=True),
    CategoryRule("Food & Dining", (
        "restaurant", "cafe", "coffee", "food", "dining",
        "mcdonald", "kfc", "starbucks", "pizza", "burger",
        "grocery", "supermarket", "bakery",
        "uber eats", "doordash", "grubhub", "deliveroo", "foodpanda", "grabfood",
        "ntuc", "fairprice", "cold storage", "sheng siong",
        "food court", "hawker", "kopitiam", "toast box", "ya kun",
        "old chang kee", "breadtalk", "yoshinoya", "ramen", "sushi",
        "dim sum", "chicken rice"
    )),
    CategoryRule("Transport", (
        "uber", "lyft", "taxi", "transport",
        "gas station", "fuel", "petrol", "parking",
        "metro", "bus/", "bus ", "train", "railway",
        "shell", "exxon", "chevron", "car wash", "toll", "transit",
        "grab", "gojek", "comfortdelgro", "citycab",
        "mrt", "ez-link", "simplygo", "smrt", "sbs transit",
        "esso", "caltex", "sinopec"
    )),
    CategoryRule("Shopping", (
        "amazon", "ebay", "shop", "store", "retail",
        "mall", "clothing", "fashion", "shoes",
        "electronics", "best buy", "target", "costco",
        "home depot", "ikea", "furniture", "online purchase",
        "lazada", "shopee", "qoo10", "zalora",
        "uniqlo", "h&m", "zara", "cotton on", "charles & keith",
        "guardian", "watsons", "sephora", "daiso",
        "harvey norman", "best denki", "kinokuniya", "taobao", "shein"
    )),
    CategoryRule("Bills & Utilities", (
        "electric", "gas bill", "water bill",
        "internet", "phone bill", "mobile", "utility",
        "insurance", "rental", "rent payment", "mortgage", "lease",
        "netflix", "spotify", "subscription", "hulu",
        "disney+", "apple music", "youtube premium",
        "sp services", "spservices", "city gas",
        "singtel", "starhub", "circles.life", "myrepublic",
        "prudential", "great eastern", "town council"
    )),
    CategoryRule("Healthcare", (
        "pharmacy", "hospital", "clinic", "doctor",
        "medical", "health", "dental", "dentist",
        "cvs", "walgreens", "prescription", "medicine"
    )),
    CategoryRule("Entertainment", (
        "cinema", "movie", "theater", "concert",
        "music", "game", "gaming", "steam", "playstation",
        "xbox", "nintendo", "gym", "fitness", "sports"
    )),
    CategoryRule("Travel", (
        "hotel", "airbnb", "booking.com", "airline",
        "flight", "airport", "travel", "vacation",
        "expedia", "hotels.com", "hostel", "resort"
    )),
    CategoryRule("Education", (
        "school", "university", "college", "tuition",
        "course", "education", "bookstore",
        "udemy", "coursera", "skillshare", "masterclass"
    )),
    CategoryRule("Transfers", (
        "transfer to", "transfer from", "atm withdrawal",
        "atm deposit", "cash withdrawal", "venmo",
        "paypal", "zelle", "cash app", "bank transfer"
    )),
]

# Merchant-name hints used only when no rule matched (opt-in lookup step)
MERCHANT_HINTS: List[Tuple[str, Tuple[str, ...]]] = [
    ("Food & Dining", ("kitchen", "bistro", "eatery", "grill", "pizz", "noodle", "rice", "mart", "deli")),
    ("Transport", ("erp", "cab", "rail", "ferry")),
    ("Shopping", ("boutique", "outlet", "emporium", "trading")),
    ("Healthcare", ("medic", "pharma", "physio", "optical")),
    ("Travel", ("inn", "lodge", "airways", "air ")),
]


def extract_merchant_name(description: str) -> str:
    """Strip reference numbers, long IDs and trailing country from a description."""
    clean = re.sub(r'Ref No\.\s*:\s*\d+', '', description, flags=re.I)
    clean = re.sub(r'\d{6,}', '', clean)
    clean = re.sub(r'\s+(SINGAPORE|SG|SGP)$', '', clean.strip(), flags=re.I)
    clean = ' '.join(clean.split())
    return re.split(r'[*/]', clean)[0].strip()


class MerchantCategoryCache:
    """Bounded least-recently-used cache of merchant name → category."""

    def __init__(self, max_size: int = Config.MERCHANT_CACHE_SIZE):
        if max_size < 1:
            raise ValueError("Cache size must be at least 1")
        self.max_size = max_size
        self._entries: "OrderedDict[str, str]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[str]:
        if key in self._entries:
            self._entries.move_to_end(key)
            self.hits += 1
            return self._entries[key]
        self.misses += 1
        return None

    def put(self, key: str, category: str) -> None:
        self._entries[key] = category
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logging.debug(f"Merchant cache evicted '{evicted}'")

    def clear(self) -> None:
        self._entries.clear()
        self.hits = self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class CategoryMapper:
    """
    Deterministic transaction categorizer using keyword matching.

    Usage:
        mapper = CategoryMapper()
        category = mapper.categorize("GRAB*TRIP SINGAPORE", -15.50)
        # Returns: "Transport"
    """

    def __init__(self, rules: Optional[List[CategoryRule]] = None,
                 cache: Optional[MerchantCategoryCache] = None,
                 merchant_lookup: bool = Config.MERCHANT_LOOKUP):
        self.rules = list(rules) if rules is not None else CATEGORY_RULES
        self.cache = cache
        self.merchant_lookup = merchant_lookup
        if self.merchant_lookup and self.cache is None:
            self.cache = MerchantCategoryCache()

    def categorize(self, description: str, amount: float) -> str:
        """
        Categorize a transaction from its description and signed amount.

        Returns the first matching rule's category, otherwise
        'Unknown Incoming' for inflows and 'Miscellaneous' for outflows.
        """
        desc_lower = (description or "").lower()
        if desc_lower:
            for rule in self.rules:
                if rule.applies_to(amount) and rule.matches(desc_lower):
                    return rule.category
        return UNKNOWN_INCOMING if amount > 0 else MISCELLANEOUS

    def categorize_enhanced(self, description: str, amount: float) -> str:
        """Rule match first; for unmatched outflows, try the merchant-name heuristic."""
        category = self.categorize(description, amount)
        if category != MISCELLANEOUS or self.cache is None:
            return category

        merchant = extract_merchant_name(description or "")
        if len(merchant) < 3:
            return category

        key = merchant.lower()
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        inferred = self._infer_from_merchant(key) or MISCELLANEOUS
        self.cache.put(key, inferred)
        return inferred

    def category_for(self, description: str, amount: float) -> str:
        if self.merchant_lookup:
            return self.categorize_enhanced(description, amount)
        return self.categorize(description, amount)

    def categorize_transactions(self, transactions: Iterable[Transaction]) -> int:
        """Fill the category of rows that have none, in place. Returns how many were filled."""
        filled = 0
        for tx in transactions:
            if tx.get("category"):
                continue
            tx["category"] = self.category_for(tx["description"], tx["amount"])
            filled += 1
        return filled

    def _infer_from_merchant(self, merchant_lower: str) -> Optional[str]:
        for category, hints in MERCHANT_HINTS:
            if any(hint in merchant_lower for hint in hints):
                return category
        return None

    def get_rules(self) -> List[CategoryRule]:
        """Return current categorization rules for transparency/audit."""
        return list(self.rules)

    def get_all_categories(self) -> List[str]:
        categories = []
        for rule in self.rules:
            if rule.category not in categories:
                categories.append(rule.category)
        return categories + [UNKNOWN_INCOMING, MISCELLANEOUS]

    def get_category_stats(self, transactions: list) -> dict:
        """
        Generate category distribution statistics.

        Args:
            transactions: List of Transaction dicts

        Returns:
            Dict with category counts
        """
        stats = {}
        for tx in transactions:
            cat = tx.get("category") or MISCELLANEOUS
            stats[cat] = stats.get(cat, 0) + 1
        return stats
