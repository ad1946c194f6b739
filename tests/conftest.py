"""Shared fixtures: golden hand-ranking cases for both evaluators."""

import pytest

# (cards, expected encoded strength)
GOLDEN_HANDS: list[tuple[str, int]] = [
    # Five cards, one per category
    ("Ah Kh Qh Jh Th", 8_000_014),
    ("9s 8s 7s 6s 5s", 8_000_009),
    ("5d 4d 3d 2d Ad", 8_000_005),
    ("Ks Kh Kd Kc 3s", 7_001_303),
    ("Jh Jd Jc 8s 8h", 6_001_108),
    ("Ah Th 7h 4h 2h", 5_960_322),
    ("9h 8s 7d 6c 5h", 4_000_009),
    ("5h 4s 3d 2c Ah", 4_000_005),
    ("Qs Qh Qd 7c 3s", 3_120_703),
    ("As Ah 8d 8c 4s", 2_140_804),
    ("Ts Th 9d 5c 2s", 1_043_346),
    ("Ah Ks 9d 5c 2h", 973_138),
    # Seven cards: best five of seven
    ("Ah Kh Qh Jh Th 2c 3d", 8_000_014),
    ("9s 8s 7s 6s 5s 4s Ah", 8_000_009),
    ("As Ad Ks Kd Qs Qd 2c", 2_141_312),
    ("7c 7d 7h 2s 2d 2h Ac", 6_000_702),
    ("Ac Kd 5h 4s 3c 2d 9h", 4_000_005),
    ("Kc Kd Kh Ks Ac Ad Ah", 7_001_314),
    ("2c 3c 4c 5c 7c 9d Jd", 5_480_306),
    # Six cards
    ("Ac Ad 9h 8s 4c 3d", 1_059_780),
]


@pytest.fixture
def golden_hands() -> list[tuple[str, int]]:
    return GOLDEN_HANDS
