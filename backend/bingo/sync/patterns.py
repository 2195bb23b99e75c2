"""Win patterns on the 5x5 card (row-major indexes 0..24)."""

from typing import Iterable, List, Optional

FREE_INDEX = 12
CELL_COUNT = 25

PATTERN_NONE = 'none'
PATTERN_CUSTOM = 'custom'

PATTERN_LABELS = {
    'none': 'No Pattern',
    'horizontal': 'Horizontal Line',
    'vertical': 'Vertical Line',
    'diagonal1': 'Diagonal TL→BR',
    'diagonal2': 'Diagonal TR→BL',
    'x': 'X Pattern',
    'blackout': 'Blackout',
    'aroundTheWorld': 'Around the World',
    'custom': 'Custom',
}

PATTERN_INDEXES = {
    'none': [],
    'horizontal': [0, 1, 2, 3, 4],
    'vertical': [0, 5, 10, 15, 20],
    'diagonal1': [0, 6, 12, 18, 24],
    'diagonal2': [4, 8, 12, 16, 20],
    'x': [0, 4, 6, 8, 12, 16, 18, 20, 24],
    'blackout': list(range(CELL_COUNT)),
    'aroundTheWorld': [0, 1, 2, 3, 4, 9, 14, 19, 24, 23, 22, 21, 20, 15, 10, 5],
    'custom': [],
}


def is_known_pattern(pattern: Optional[str]) -> bool:
    return pattern in PATTERN_INDEXES


def normalize_custom(indexes: Optional[Iterable]) -> List[int]:
    """Sorted, de-duplicated cell indexes; anything off the grid is dropped."""
    cleaned = set()
    for idx in indexes or []:
        if isinstance(idx, bool) or not isinstance(idx, int):
            continue
        if 0 <= idx < CELL_COUNT:
            cleaned.add(idx)
    return sorted(cleaned)


def required_indexes(pattern: Optional[str], custom_pattern: Optional[Iterable] = None) -> List[int]:
    """Resolve the cells a pattern requires. Unknown, missing and 'none' resolve to []."""
    if pattern == PATTERN_CUSTOM:
        return normalize_custom(custom_pattern)
    if not pattern or pattern == PATTERN_NONE:
        return []
    return list(PATTERN_INDEXES.get(pattern, []))


def is_active(pattern: Optional[str], custom_pattern: Optional[Iterable] = None) -> bool:
    return bool(required_indexes(pattern, custom_pattern))
