import os
import random
import sys

import pytest

sys.path.append(os.path.dirname(__file__))

from conftest import FixedRandom
from dice_utils import DiceParseError, roll


def test_single_die_bounds():
    rng = random.Random(7)
    for _ in range(200):
        assert 1 <= roll('1d4', rng).total <= 4


def test_constants_and_signs():
    assert roll('1d4+2', FixedRandom()).total == 3
    assert roll('2d6-1', FixedRandom(offset=5)).total == 11
    assert roll('5').total == 5


def test_keep_highest():
    class Sequence(random.Random):
        def __init__(self, values):
            super().__init__(0)
            self.values = list(values)

        def randint(self, a, b):
            return self.values.pop(0)

    result = roll('4d6kh3', Sequence([1, 6, 3, 5]))
    assert result.total == 14
    assert result.rolls == [1, 6, 3, 5]
    assert result.kept == [6, 5, 3]
    assert str(result) == '4d6kh3 = 14 [1, 6, 3, 5]'


@pytest.mark.parametrize('expr', ['', 'd', '1d0', '101d6', '1d6!', 'two dice'])
def test_bad_expressions(expr):
    with pytest.raises(DiceParseError):
        roll(expr)
