"""Readers for the PostgreSQL catalog sources behind the built-in type and SQLSTATE tables.

``parse_errcodes`` reads the server's ``errcodes.txt``. ``DatParser`` reads the
Perl-like ``.dat`` catalog files. ``parse_types`` turns ``pg_type.dat`` and
``pg_range.dat`` into a table of built-in types keyed by OID.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_RANGE_VECTOR_RE = re.compile(r"(range|vector)$")
_ARRAY_RE = re.compile(r"^_(.*)", re.DOTALL)

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
}


class DatParseError(ValueError):
    """Raised when catalog data is malformed or inconsistent."""


def _ascii_upper(text: str) -> str:
    return "".join(ch.upper() if ch.isascii() else ch for ch in text)


def snake_to_camel(text: str) -> str:
    """Convert ``snake_case`` to ``CamelCase``; underscores are dropped."""
    out = []
    upper = True
    for ch in text:
        if ch == "_":
            upper = True
        elif upper:
            upper = False
            out.append(_ascii_upper(ch))
        else:
            out.append(ch)
    return "".join(out)


def parse_errcodes(text: str) -> dict[str, list[str]]:
    """Read ``errcodes.txt`` into SQLSTATE code -> constant names, in file order.

    The ``ERRCODE_`` prefix is removed from each name. A code listed more than
    once collects every name given for it; the first is its primary name.
    """
    codes: dict[str, list[str]] = {}
    for line in text.splitlines():
        if line.startswith("#") or line.startswith("Section") or not line.strip():
            continue
        fields = line.split()
        if len(fields) < 3:
            raise DatParseError(f"malformed error code line: {line!r}")
        code, name = fields[0], fields[2].replace("ERRCODE_", "")
        codes.setdefault(code, []).append(name)
    return codes


class DatParser:
    """Parser for catalog ``.dat`` files: a list of ``{ key => 'value', ... },`` objects."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def parse_array(self) -> list[dict[str, str]]:
        """Parse the whole input as an array of objects."""
        self._eat("[")
        objects = []
        while not self._try_eat("]"):
            objects.append(self._parse_object())
        self._eof()
        return objects

    def _parse_object(self) -> dict[str, str]:
        obj: dict[str, str] = {}
        self._eat("{")
        while True:
            key = self._parse_ident()
            self._eat("=")
            self._eat(">")
            obj[key] = self._parse_string()
            if not self._try_eat(","):
                break
        self._eat("}")
        self._eat(",")
        return obj

    def _current(self) -> str | None:
        return self._text[self._pos] if self._pos < len(self._text) else None

    def _parse_ident(self) -> str:
        self._skip_ws()
        start = self._pos
        while (ch := self._current()) is not None and ("a" <= ch <= "z" or ch == "_"):
            self._pos += 1
        return self._text[start : self._pos]

    def _next(self) -> str:
        ch = self._current()
        if ch is None:
            raise DatParseError("unexpected eof")
        self._pos += 1
        return ch

    def _parse_string(self) -> str:
        self._skip_ws()
        self._eat("'")
        out = []
        while True:
            ch = self._next()
            if ch == "'":
                return "".join(out)
            if ch == "\\":
                ch = self._next()
            out.append(ch)

    def _eat(self, target: str) -> None:
        self._skip_ws()
        ch = self._current()
        if ch is None:
            raise DatParseError(f"expected {target} but got eof")
        if ch != target:
            raise DatParseError(f"expected {target} but got {ch}")
        self._pos += 1

    def _try_eat(self, target: str) -> bool:
        self._skip_ws()
        if self._current() == target:
            self._pos += 1
            return True
        return False

    def _eof(self) -> None:
        self._skip_ws()
        ch = self._current()
        if ch is not None:
            raise DatParseError(f"expected eof but got {ch}")

    def _skip_ws(self) -> None:
        while (ch := self._current()) is not None:
            if ch == "#":
                end = self._text.find("\n", self._pos)
                self._pos = len(self._text) if end < 0 else end + 1
            elif ch in "\n \t":
                self._pos += 1
            else:
                break


@dataclass(frozen=True)
class PgType:
    """A built-in type as described by the catalog.

    ``kind`` is the catalog's type category (``A`` for arrays, ``R`` for
    ranges, ``P`` for pseudo-types, ...). ``element`` is the OID of the
    element or range subtype, or 0 when there is none. ``doc`` is
    HTML-escaped.
    """

    oid: int
    name: str
    variant: str
    ident: str
    kind: str
    typtype: str | None
    element: int
    doc: str


def _field(raw: dict[str, str], key: str) -> str:
    try:
        return raw[key]
    except KeyError:
        raise DatParseError(f"missing field {key}") from None


def _lookup(table: dict, key, what: str):
    try:
        return table[key]
    except KeyError:
        raise DatParseError(f"unknown {what} {key}") from None


def _oid(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise DatParseError(f"invalid oid {text!r}") from None
    if not 0 <= value <= 2**32 - 1:
        raise DatParseError(f"invalid oid {text!r}")
    return value


def _html_escape(text: str) -> str:
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)


def parse_types(type_dat: str, range_dat: str) -> dict[int, PgType]:
    """Build the built-in type table, ordered by OID, from ``pg_type.dat`` and ``pg_range.dat``.

    Composite and enum types are left out; an ``array_type_oid`` entry adds
    the matching array type as well.
    """
    raw_types = DatParser(type_dat).parse_array()
    raw_ranges = DatParser(range_dat).parse_array()

    oids_by_name = {_field(m, "typname"): _oid(_field(m, "oid")) for m in raw_types}

    range_elements = {
        _lookup(oids_by_name, _field(m, "rngtypid"), "type"): _lookup(
            oids_by_name, _field(m, "rngsubtype"), "type"
        )
        for m in raw_ranges
    }
    multi_range_elements = {
        _lookup(oids_by_name, _field(m, "rngmultitypid"), "type"): _lookup(
            oids_by_name, _field(m, "rngsubtype"), "type"
        )
        for m in raw_ranges
    }

    types: dict[int, PgType] = {}

    for raw in raw_types:
        oid = _oid(_field(raw, "oid"))
        name = _field(raw, "typname")

        ident = _RANGE_VECTOR_RE.sub(r"_\1", name, count=1)
        ident = _ARRAY_RE.sub(r"\1_array", ident, count=1)
        variant = snake_to_camel(ident)
        ident = _ascii_upper(ident)

        kind = _field(raw, "typcategory")
        # Composite fields and enum variants are looked up at runtime.
        if kind in ("C", "E"):
            continue

        typtype = raw.get("typtype")

        if kind == "R":
            if typtype is None:
                raise DatParseError("range type must have typtype")
            if typtype == "r":
                element = _lookup(range_elements, oid, "range type")
            elif typtype == "m":
                element = _lookup(multi_range_elements, oid, "multirange type")
            else:
                raise DatParseError(f"invalid range typtype {typtype}")
        elif kind == "A":
            element = _lookup(oids_by_name, _field(raw, "typelem"), "type")
        else:
            element = 0

        doc_name = _ascii_upper(_ARRAY_RE.sub(r"\1[]", name, count=1))
        doc = doc_name
        if "descr" in raw:
            doc = f"{doc} - {raw['descr']}"
        doc = _html_escape(doc)

        if "array_type_oid" in raw:
            array_oid = _oid(raw["array_type_oid"])
            types[array_oid] = PgType(
                oid=array_oid,
                name=f"_{name}",
                variant=f"{variant}Array",
                ident=f"{ident}_ARRAY",
                kind="A",
                typtype=None,
                element=oid,
                doc=f"{doc_name}&#91;&#93;",
            )

        types[oid] = PgType(
            oid=oid,
            name=name,
            variant=variant,
            ident=ident,
            kind=kind,
            typtype=typtype,
            element=element,
            doc=doc,
        )

    return dict(sorted(types.items()))