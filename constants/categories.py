"""
Food Category Constants

Canonical category keys plus the labels the generation service may answer with.
"""

# Canonical key -> display label
FOOD_CATEGORIES = {
    'vegetables': '野菜',
    'meat': '肉類',
    'seafood': '魚介類',
    'dairy': '乳製品',
    'egg': '卵',
    'fruits': '果物',
    'seasoning': '調味料',
    'grain': '主食',
    'drink': '飲料',
    'other': 'その他',
}

# Alternate labels seen in generated output -> canonical key
CATEGORY_ALIASES = {
    '卵・日配品': 'egg',
    '日配品': 'egg',
    '米・麺類': 'grain',
    '米': 'grain',
    '麺類': 'grain',
    'vegetable': 'vegetables',
    'produce': 'vegetables',
    'fish': 'seafood',
    'eggs': 'egg',
    'fruit': 'fruits',
    'condiments': 'seasoning',
    'spices': 'seasoning',
    'grains': 'grain',
    'beverages': 'drink',
    'drinks': 'drink',
}

DEFAULT_CATEGORY = 'other'

# Category names offered to the consolidation prompt
PROMPT_CATEGORY_LABELS = (
    '野菜', '肉類', '魚介類', '乳製品', '卵・日配品',
    '果物', '調味料', '米・麺類', '飲料', 'その他',
)


def normalize_category(raw):
    """Map a category key, label or alias to a canonical key ('other' if unknown)."""
    if not raw:
        return DEFAULT_CATEGORY
    value = str(raw).strip()
    lowered = value.lower()
    if lowered in FOOD_CATEGORIES:
        return lowered
    for key, label in FOOD_CATEGORIES.items():
        if label == value:
            return key
    return CATEGORY_ALIASES.get(value, CATEGORY_ALIASES.get(lowered, DEFAULT_CATEGORY))
