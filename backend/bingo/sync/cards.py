import random
from typing import List, Optional

from .patterns import CELL_COUNT, FREE_INDEX

# Column ranges B, I, N, G, O
COLUMN_RANGES = [(1, 15), (16, 30), (31, 45), (46, 60), (61, 75)]
LETTERS = 'BINGO'
MAX_BALL = 75


def card_seed(room_id: str, client_id: str, card_version: int) -> str:
    return f"{room_id}:{client_id}:{card_version}"


def generate_card_numbers(seed: str) -> List[Optional[int]]:
    """Deterministic 5x5 card for a seed, row-major, with the center cell free (None).

    Each column draws five distinct numbers from its letter's range.
    """
    rng = random.Random(seed)
    cells: List[Optional[int]] = [None] * CELL_COUNT
    for col, (start, end) in enumerate(COLUMN_RANGES):
        pool = list(range(start, end + 1))
        rng.shuffle(pool)
        for row, number in enumerate(pool[:5]):
            cells[row * 5 + col] = number
    cells[FREE_INDEX] = None
    return cells


def bingo_letter(number: int) -> str:
    if number <= 15:
        return 'B'
    if number <= 30:
        return 'I'
    if number <= 45:
        return 'N'
    if number <= 60:
        return 'G'
    return 'O'
