"""Parsers for the ``AxB`` value pairs accepted on the command line."""

from __future__ import annotations

from typing import Callable, Optional, TypeVar

from .renderer import Complex

T = TypeVar("T")


def parse_arg(text: str, separator: str, kind: Callable[[str], T]) -> Optional[tuple[T, T]]:
    """Parse ``text`` as a pair such as ``"200x400"`` or ``"-2.0,0.5"``.

    The string is split at the first ``separator`` and both halves are
    converted with ``kind``. Returns ``None`` if the separator is missing or
    either half fails to convert.
    """

    if not text:
        return None

    left, found, right = text.partition(separator)
    if not found:
        return None

    try:
        return kind(left), kind(right)
    except ValueError:
        return None


def parse_complex(text: str) -> Optional[Complex]:
    pair = parse_arg(text, ",", float)
    if pair is None:
        return None
    return Complex(re=pair[0], im=pair[1])
