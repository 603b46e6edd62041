"""Dice rolling with an injectable random source.

Rolls are relayed to the room and never stored, so everything here is a pure
function of the die kind and the random source handed in.
"""
from __future__ import annotations

import random
import re
from typing import Optional, Protocol

from .constants import MAX_DIE_SIDES, STANDARD_DICE
from .errors import InvalidRequestError
from .schemas import DiceRoll

_DIE_PATTERN = re.compile(r"^d(\d+)$", re.IGNORECASE)

_system_random = random.SystemRandom()


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...


def normalise_die_kind(die_kind: str) -> str:
    return (die_kind or "").strip().lower()


def sides_of(die_kind: str) -> int:
    """Return the number of faces for *die_kind* (``"d20"``, ``"D7"`` ...).

    Raises
    ------
    InvalidRequestError
        If *die_kind* is not of the form ``d<N>`` with ``2 <= N <= 1000``.
    """
    kind = normalise_die_kind(die_kind)
    if kind in STANDARD_DICE:
        return STANDARD_DICE[kind]
    match = _DIE_PATTERN.match(kind)
    if not match:
        raise InvalidRequestError(f"Unknown die kind {die_kind!r}")
    sides = int(match.group(1))
    if sides < 2 or sides > MAX_DIE_SIDES:
        raise InvalidRequestError(f"A die needs between 2 and {MAX_DIE_SIDES} sides")
    return sides


def roll(die_kind: str, rng: Optional[RandomSource] = None) -> int:
    """Uniform integer in ``[1, sides_of(die_kind)]``."""
    source = rng or _system_random
    return source.randint(1, sides_of(die_kind))


def roll_for(display_name: str, die_kind: str, rng: Optional[RandomSource] = None) -> DiceRoll:
    sides = sides_of(die_kind)
    source = rng or _system_random
    return DiceRoll(
        display_name=display_name,
        die_kind=f"d{sides}",
        sides=sides,
        value=source.randint(1, sides),
    )


__all__ = ["RandomSource", "normalise_die_kind", "sides_of", "roll", "roll_for"]
