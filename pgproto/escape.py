"""Escaping of literals and identifiers for SQL text.

Prefer parameterized queries where possible; never escape the parameters
of a parameterized query.
"""

from __future__ import annotations


def escape_literal(text: str) -> str:
    """Quote ``text`` as a string literal.

    If the text contains backslashes the result uses the `` E'...'`` form, so
    it is correct whatever ``standard_conforming_strings`` is set to.
    """
    return _escape(text, as_ident=False)


def escape_identifier(text: str) -> str:
    """Quote ``text`` as an identifier in double quotes."""
    return _escape(text, as_ident=True)


def _escape(text: str, *, as_ident: bool) -> str:
    quote = '"' if as_ident else "'"
    has_backslash = not as_ident and "\\" in text

    body = text.replace(quote, quote * 2)
    if has_backslash:
        body = body.replace("\\", "\\\\")

    # The leading space guards against the result landing right after an
    # identifier when interpolated.
    prefix = " E" if has_backslash else ""
    return f"{prefix}{quote}{body}{quote}"