"""
Dice rolls for combat and character creation.

Supported notation, joined with + or -:
- NdM         e.g. 1d4, 3d6
- NdMkhK      keep the K highest dice, e.g. 4d6kh3
- constants   e.g. 1d4+2

    roll('1d4', rng).total      # combat swing
    roll('4d6kh3', rng).total   # attribute roll
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import List, Optional


class DiceParseError(ValueError):
    pass


@dataclass
class RollResult:
    expression: str
    total: int
    rolls: List[int] = field(default_factory=list)
    kept: List[int] = field(default_factory=list)

    def __str__(self) -> str:
        detail = f" [{', '.join(map(str, self.rolls))}]" if self.rolls else ''
        return f"{self.expression} = {self.total}{detail}"


_TERM_RE = re.compile(r"([+-])\s*(?:(\d*)d(\d+)(?:kh(\d+))?|(\d+))")

MAX_DICE = 100


def roll(expression: str, rng: Optional[random.Random] = None) -> RollResult:
    rng = rng or random
    expr = (expression or '').replace(' ', '')
    if not expr:
        raise DiceParseError("Empty expression")
    if expr[0] not in '+-':
        expr = '+' + expr

    pos = 0
    total = 0
    all_rolls: List[int] = []
    all_kept: List[int] = []
    for m in _TERM_RE.finditer(expr):
        if m.start() != pos:
            raise DiceParseError(f"Unexpected text in {expression!r}")
        pos = m.end()
        sign = -1 if m.group(1) == '-' else 1
        if m.group(5) is not None:
            total += sign * int(m.group(5))
            continue
        count = int(m.group(2) or '1')
        sides = int(m.group(3))
        if count < 1 or count > MAX_DICE or sides < 1:
            raise DiceParseError(f"Bad dice term in {expression!r}")
        rolls = [rng.randint(1, sides) for _ in range(count)]
        keep = int(m.group(4)) if m.group(4) else count
        kept = sorted(rolls, reverse=True)[:max(0, min(keep, count))]
        all_rolls.extend(rolls)
        all_kept.extend(kept)
        total += sign * sum(kept)
    if pos != len(expr):
        raise DiceParseError(f"Unexpected text in {expression!r}")
    return RollResult(expression=expression, total=total, rolls=all_rolls, kept=all_kept)
