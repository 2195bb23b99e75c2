"""Decorative spin shown before a draw commits.

Frames are local to each client; only the value returned from the last step
is ever committed to the room document.
"""

import random
import threading
from typing import Callable, Collection, Optional

from .cards import MAX_BALL


def pick_ball(excluded: Collection[int], rng: random.Random) -> int:
    """Uniform pick in [1, 75] not in `excluded` (rejection sampling)."""
    if len(set(excluded)) >= MAX_BALL:
        raise ValueError('all balls have been drawn')
    while True:
        ball = rng.randint(1, MAX_BALL)
        if ball not in excluded:
            return ball


class DrawAnimation:
    def __init__(self, steps: int = 10, step_delay: float = 0.1, rng: Optional[random.Random] = None):
        self.steps = max(1, int(steps))
        self.step_delay = max(0.0, float(step_delay))
        self.rng = rng or random.Random()

    def run(self, drawn: Collection[int], on_frame: Callable[[int], None],
            cancelled: Optional[threading.Event] = None) -> Optional[int]:
        """Spin through `steps` frames and return the final pick, or None if cancelled."""
        cancelled = cancelled or threading.Event()
        excluded = set(drawn)
        ball = None
        for step in range(self.steps):
            if cancelled.is_set():
                return None
            ball = pick_ball(excluded, self.rng)
            on_frame(ball)
            if step < self.steps - 1 and self.step_delay and cancelled.wait(self.step_delay):
                return None
        return ball



def animation_from_config(config) -> DrawAnimation:
    return DrawAnimation(
        steps=int(config.get('DRAW_ANIMATION_STEPS', 10)),
        step_delay=int(config.get('DRAW_STEP_MS', 100)) / 1000.0,
    )
