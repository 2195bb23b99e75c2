"""Win verification shared by the player's claim gate and the host's re-check.

A claim is valid only when both passes hold:
  1. every cell the pattern requires (except the free center) is punched;
  2. every punched cell (except the free center) holds a number that was drawn.
The second pass is what catches punches on numbers that were never called.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .patterns import CELL_COUNT, FREE_INDEX, required_indexes

REASON_NO_PATTERN = 'no pattern selected'
REASON_INCOMPLETE = 'pattern not complete'
REASON_INVALID_PUNCH = 'invalid punched cell detected'


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


def punched_from_indexes(indexes: Iterable[int]) -> List[bool]:
    punched = [False] * CELL_COUNT
    for idx in indexes:
        if 0 <= idx < CELL_COUNT:
            punched[idx] = True
    return punched


def punched_indexes(punched: Sequence[bool]) -> List[int]:
    return [i for i, on in enumerate(punched) if on]


def verify(card_numbers: Sequence[Optional[int]], punched: Sequence[bool],
           drawn_balls: Iterable[int], pattern: Optional[str],
           custom_pattern: Optional[Iterable[int]] = None) -> VerificationResult:
    required = required_indexes(pattern, custom_pattern)
    if not required:
        return VerificationResult(False, REASON_NO_PATTERN)

    def is_punched(idx: int) -> bool:
        return idx < len(punched) and bool(punched[idx])

    for idx in required:
        if idx == FREE_INDEX:
            continue
        if not is_punched(idx):
            return VerificationResult(False, REASON_INCOMPLETE)

    drawn = set(drawn_balls)
    for idx in range(CELL_COUNT):
        if idx == FREE_INDEX or not is_punched(idx):
            continue
        number = card_numbers[idx] if idx < len(card_numbers) else None
        if number is None or number not in drawn:
            return VerificationResult(False, REASON_INVALID_PUNCH)

    return VerificationResult(True)
