"""Fractional indexing — sortable string keys for sibling ordering.

A key is an *integer part* followed by an optional *fraction part*, both
written with base-62 digits (0-9, A-Z, a-z) so that plain byte-wise string
comparison gives the intended order:

    a0 < a0V < a1 < a2 < ... < az < b00 < ... < zzzz...

The head character of the integer part encodes its length: 'a'..'z' are
lengths 2..27 (non-negative side), 'Z'..'A' lengths 2..27 (negative side).
A fraction never ends in '0', so there is always room between two keys and
nothing has to be renumbered when a page is inserted or moved.

Requires a byte-order collation on the database column (SQLite BINARY).
"""

from __future__ import annotations

import random
from typing import Optional

BASE_62_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
ZERO = BASE_62_DIGITS[0]

INTEGER_ZERO = "a0"  # first key of an empty sibling group
SMALLEST_INTEGER = "A" + ZERO * 26

# Random digits appended to every generated key
JITTER_DIGITS = 3

_rng = random.SystemRandom()


def _midpoint(a: str, b: Optional[str]) -> str:
    """Fraction strictly between a and b ("" is 0, None is 1)."""
    if b is not None and a >= b:
        raise ValueError(f"Invalid ordering: {a!r} >= {b!r}")
    if a[-1:] == ZERO or (b is not None and b[-1:] == ZERO):
        raise ValueError("Fraction part cannot end with a zero digit")

    if b:
        # Skip the common prefix (a is implicitly zero-padded)
        n = 0
        while n < len(b) and (a[n] if n < len(a) else ZERO) == b[n]:
            n += 1
        if n > 0:
            return b[:n] + _midpoint(a[n:], b[n:])

    digit_a = BASE_62_DIGITS.index(a[0]) if a else 0
    digit_b = BASE_62_DIGITS.index(b[0]) if b is not None else len(BASE_62_DIGITS)
    if digit_b - digit_a > 1:
        return BASE_62_DIGITS[(digit_a + digit_b + 1) // 2]

    # Consecutive digits
    if b is not None and len(b) > 1:
        return b[:1]
    return BASE_62_DIGITS[digit_a] + _midpoint(a[1:], None)


def _integer_length(head: str) -> int:
    if "a" <= head <= "z":
        return ord(head) - ord("a") + 2
    if "A" <= head <= "Z":
        return ord("Z") - ord(head) + 2
    raise ValueError(f"Invalid order key head: {head!r}")


def _validate_integer(integer: str) -> None:
    if len(integer) != _integer_length(integer[0]):
        raise ValueError(f"Invalid integer part of order key: {integer!r}")


def _integer_part(key: str) -> str:
    length = _integer_length(key[0])
    if length > len(key):
        raise ValueError(f"Invalid order key: {key!r}")
    return key[:length]


def _increment_integer(x: str) -> Optional[str]:
    _validate_integer(x)
    head, digits = x[0], list(x[1:])
    carry = True
    for i in range(len(digits) - 1, -1, -1):
        d = BASE_62_DIGITS.index(digits[i]) + 1
        if d == len(BASE_62_DIGITS):
            digits[i] = ZERO
        else:
            digits[i] = BASE_62_DIGITS[d]
            carry = False
            break
    if carry:
        if head == "Z":
            return "a" + ZERO
        if head == "z":
            return None
        h = chr(ord(head) + 1)
        if h > "a":
            digits.append(ZERO)
        else:
            digits.pop()
        return h + "".join(digits)
    return head + "".join(digits)


def _decrement_integer(x: str) -> Optional[str]:
    _validate_integer(x)
    head, digits = x[0], list(x[1:])
    borrow = True
    for i in range(len(digits) - 1, -1, -1):
        d = BASE_62_DIGITS.index(digits[i]) - 1
        if d == -1:
            digits[i] = BASE_62_DIGITS[-1]
        else:
            digits[i] = BASE_62_DIGITS[d]
            borrow = False
            break
    if borrow:
        if head == "a":
            return "Z" + BASE_62_DIGITS[-1]
        if head == "A":
            return None
        h = chr(ord(head) - 1)
        if h < "Z":
            digits.append(BASE_62_DIGITS[-1])
        else:
            digits.pop()
        return h + "".join(digits)
    return head + "".join(digits)


def validate_order_key(key: str) -> None:
    """Raise ValueError if key is not a well-formed order key."""
    if not isinstance(key, str) or not key:
        raise ValueError("Order key must be a non-empty string")
    if key == SMALLEST_INTEGER:
        raise ValueError(f"Invalid order key: {key!r}")
    bad = [c for c in key if c not in BASE_62_DIGITS]
    if bad:
        raise ValueError(f"Invalid character {bad[0]!r} in order key {key!r}")
    integer = _integer_part(key)
    fraction = key[len(integer):]
    if fraction[-1:] == ZERO:
        raise ValueError(f"Invalid order key: {key!r}")


def is_valid_order_key(key) -> bool:
    try:
        validate_order_key(key)
    except ValueError:
        return False
    return True


def generate_key_between(a: Optional[str], b: Optional[str]) -> str:
    """Return a key k with a < k < b.

    a=None means "before everything", b=None means "after everything".
    Raises ValueError for invalid keys or when a >= b.
    """
    if a is not None:
        validate_order_key(a)
    if b is not None:
        validate_order_key(b)
    if a is not None and b is not None and a >= b:
        raise ValueError(f"Invalid ordering: {a!r} >= {b!r}")

    if a is None:
        if b is None:
            return INTEGER_ZERO
        ib = _integer_part(b)
        fb = b[len(ib):]
        if ib == SMALLEST_INTEGER:
            return ib + _midpoint("", fb)
        if ib < b:
            return ib
        res = _decrement_integer(ib)
        if res is None:
            raise ValueError("Cannot decrement any more")
        return res

    if b is None:
        ia = _integer_part(a)
        fa = a[len(ia):]
        i = _increment_integer(ia)
        return ia + _midpoint(fa, None) if i is None else i

    ia = _integer_part(a)
    fa = a[len(ia):]
    ib = _integer_part(b)
    fb = b[len(ib):]
    if ia == ib:
        return ia + _midpoint(fa, fb)
    i = _increment_integer(ia)
    if i is None:
        raise ValueError("Cannot increment any more")
    if i < b:
        return i
    return ia + _midpoint(fa, None)


def generate_n_keys_between(a: Optional[str], b: Optional[str], n: int) -> list[str]:
    """Return n ordered keys, all strictly between a and b."""
    if n <= 0:
        return []
    if n == 1:
        return [generate_key_between(a, b)]
    if b is None:
        c = generate_key_between(a, b)
        keys = [c]
        for _ in range(n - 1):
            c = generate_key_between(c, b)
            keys.append(c)
        return keys
    if a is None:
        c = generate_key_between(a, b)
        keys = [c]
        for _ in range(n - 1):
            c = generate_key_between(a, c)
            keys.append(c)
        keys.reverse()
        return keys
    mid = n // 2
    c = generate_key_between(a, b)
    return [
        *generate_n_keys_between(a, c, mid),
        c,
        *generate_n_keys_between(c, b, n - mid - 1),
    ]


def generate_jittered_key_between(
    a: Optional[str],
    b: Optional[str],
    jitter_digits: int = JITTER_DIGITS,
    rng: Optional[random.Random] = None,
) -> str:
    """Like generate_key_between, with random low-order digits appended.

    Two writers inserting into the same gap at the same time get different
    keys with high probability. The result is still strictly inside (a, b).
    """
    key = generate_key_between(a, b)
    if jitter_digits <= 0:
        return key
    rng = rng or _rng
    suffix = "".join(rng.choice(BASE_62_DIGITS) for _ in range(jitter_digits - 1))
    suffix += rng.choice(BASE_62_DIGITS[1:])
    candidate = key + suffix
    if b is None or candidate < b:
        return candidate
    # key is a prefix of b: any suffix may overshoot
    return generate_key_between(key, b)
