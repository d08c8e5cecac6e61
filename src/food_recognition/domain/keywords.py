"""Keyword dictionaries used when arbitrating between nutrition sources."""

# Packaged products whose reference entries carry exact label nutrition.
BRAND_KEYWORDS: frozenset[str] = frozenset(
    {
        "adrenaline",
        "exponenta",
        "даниссимо",
        "доширак",
        "чан",
        "со вкусом",
        "high-pro",
        "vitaminpower",
    }
)

# Freeform dishes that must never borrow branded reference numbers.
GENERIC_DISH_KEYWORDS: frozenset[str] = frozenset(
    {
        "бургер",
        "рамен",
        "пирог",
        "салат",
        "суп",
        "паста",
    }
)

# Filler words dropped before relaxing a reference query.
QUERY_FILLER_WORDS: frozenset[str] = frozenset(
    {
        "сорт",
        "сорта",
        "сортов",
        "тип",
        "вида",
        "вид",
        "набор",
        "упаковка",
        "type",
        "variety",
        "set",
    }
)


def contains_keyword(text: str, keywords: frozenset[str]) -> bool:
    """Return True when any keyword occurs in the lowercased text."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)
