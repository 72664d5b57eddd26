"""
Unicode character-class policies for free-text form fields.

A value is judged by which Unicode general categories appear in it. A policy
names the categories that are allowed (at least one must be present) and the
categories that are forbidden (none may be present).
"""

import unicodedata
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping


class Category(str, Enum):
    LETTER = "L"
    SEPARATOR = "Z"
    PUNCTUATION = "P"
    CONTROL = "C"
    MARK = "M"
    NUMBER = "N"
    SYMBOL = "S"


CategorySet = Mapping[Category, bool]

# Functionally separators in form text, but Unicode files them under Cc.
_EXTRA_SEPARATORS = frozenset("\t\r\n")

_MAJOR_CLASSES: Dict[str, Category] = {
    "L": Category.LETTER,
    "Z": Category.SEPARATOR,
    "P": Category.PUNCTUATION,
    "M": Category.MARK,
    "N": Category.NUMBER,
    "S": Category.SYMBOL,
}


def _policy(**flags: bool) -> CategorySet:
    return MappingProxyType({Category[name.upper()]: flag for name, flag in flags.items()})


RESTRICTED_TEXT: CategorySet = _policy(
    letter=True,
    separator=True,
    punctuation=True,
    control=False,
    mark=False,
    number=False,
    symbol=False,
)

UNRESTRICTED_TEXT: CategorySet = _policy(
    letter=True,
    separator=True,
    punctuation=True,
    control=False,
    mark=True,
    number=True,
    symbol=True,
)


def classify_char(ch: str) -> Category:
    """Map a single character onto one of the seven categories."""
    if ch in _EXTRA_SEPARATORS:
        return Category.SEPARATOR
    # Cc, Cf, Cs, Co and Cn all fall through to CONTROL.
    return _MAJOR_CLASSES.get(unicodedata.category(ch)[0], Category.CONTROL)


def present(s: str) -> Dict[Category, bool]:
    """Return a flag per category, True iff some character of s belongs to it."""
    found = {c: False for c in Category}
    for ch in s:
        found[classify_char(ch)] = True
    return found


def evaluate(s: str, policy: CategorySet) -> bool:
    """
    Accept s only if it contains at least one character from an allowed
    category and no character from a forbidden one.

    The empty string has nothing present to satisfy the allowed side, so it
    never validates.
    """
    found = present(s)
    accept = any(found[c] for c, allowed in policy.items() if allowed)
    reject_ok = not any(found[c] for c, allowed in policy.items() if not allowed)
    return accept and reject_ok


def accept_restricted_text(s: str) -> bool:
    """Letters, separators and punctuation only."""
    return evaluate(s, RESTRICTED_TEXT)


def accept_unrestricted_text(s: str) -> bool:
    """Anything except control characters."""
    return evaluate(s, UNRESTRICTED_TEXT)
