"""
Secret code validation and Bulls & Cows scoring.

A code is a fixed-length string of pairwise distinct symbols drawn from an
alphabet (decimal digits in production). Scoring compares a guess against a
secret: a bull is a matching symbol in the matching position, a cow is a
shared symbol in a different position. Each secret symbol is consumed at
most once, bulls first.
"""

from pydantic import BaseModel

CODE_LENGTH = 4
DIGITS = frozenset("0123456789")


class Score(BaseModel):
    """Result of scoring one guess against a secret."""

    model_config = {"frozen": True}

    bulls: int
    cows: int

    def is_win(self, length: int = CODE_LENGTH) -> bool:
        return self.bulls == length


def is_valid_code(code: object, length: int = CODE_LENGTH, alphabet: frozenset[str] = DIGITS) -> bool:
    """Check that code has exactly `length` distinct symbols from `alphabet`."""
    if not isinstance(code, str) or len(code) != length:
        return False
    if any(symbol not in alphabet for symbol in code):
        return False
    return len(set(code)) == length


def score_guess(secret: str, guess: str) -> Score:
    """Score a guess against a secret of the same length."""
    if len(secret) != len(guess):
        raise ValueError(f"secret and guess lengths differ: {len(secret)} != {len(guess)}")

    remaining_secret: list[str] = []
    remaining_guess: list[str] = []
    bulls = 0
    for secret_symbol, guess_symbol in zip(secret, guess, strict=True):
        if secret_symbol == guess_symbol:
            bulls += 1
        else:
            remaining_secret.append(secret_symbol)
            remaining_guess.append(guess_symbol)

    cows = 0
    for symbol in remaining_guess:
        if symbol in remaining_secret:
            cows += 1
            remaining_secret.remove(symbol)

    return Score(bulls=bulls, cows=cows)
