"""Short human-shareable codes for rooms and session tokens.

Codes are three characters from an alphabet without the look-alikes I, O, 0
and 1, so they can be read out loud or typed from a screenshot. The space is
small (32**3 = 32768 codes), so callers must check every candidate against
the live set and regenerate on collision.
"""

import random
from collections.abc import Callable

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 3
CODE_SPACE = len(CODE_ALPHABET) ** CODE_LENGTH

# Random draws before falling back to a linear scan of the remaining space.
MAX_RANDOM_ATTEMPTS = 1000

_secure_random = random.SystemRandom()


class CodeSpaceExhaustedError(Exception):
    """Every possible code is in use."""


def random_code(rng: random.Random | None = None) -> str:
    rng = rng or _secure_random
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _code_at(index: int) -> str:
    chars = []
    for _ in range(CODE_LENGTH):
        index, digit = divmod(index, len(CODE_ALPHABET))
        chars.append(CODE_ALPHABET[digit])
    return "".join(reversed(chars))


def generate_code(is_taken: Callable[[str], bool], rng: random.Random | None = None) -> str:
    """Return a code for which ``is_taken`` is False.

    Random candidates are tried first; when the space is nearly full the
    remaining codes are scanned in order so a free code is always found.
    """
    for _ in range(MAX_RANDOM_ATTEMPTS):
        code = random_code(rng)
        if not is_taken(code):
            return code
    for index in range(CODE_SPACE):
        code = _code_at(index)
        if not is_taken(code):
            return code
    raise CodeSpaceExhaustedError(f"all {CODE_SPACE} codes are in use")


def is_valid_code(value: str) -> bool:
    return len(value) == CODE_LENGTH and all(ch in CODE_ALPHABET for ch in value)
