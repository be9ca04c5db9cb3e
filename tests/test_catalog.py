import pytest

from pgproto.catalog import (
    DatParseError,
    DatParser,
    PgType,
    parse_errcodes,
    parse_types,
    snake_to_camel,
)

TYPE_DAT = r"""
# sample of pg_type.dat
[

{ oid => '16', array_type_oid => '1000',
  descr => 'boolean, <true> & false',
  typname => 'bool', typlen => '1', typcategory => 'B' },
{ oid => '23', array_type_oid => '1007',
  descr => '-2 billion to 2 billion integer, 4-byte storage',
  typname => 'int4', typcategory => 'N' },
{ oid => '2249', descr => 'pseudo-type representing any composite type',
  typname => 'record', typcategory => 'P' },
{ oid => '3904', array_type_oid => '3905', descr => 'range of integers',
  typname => 'int4range', typcategory => 'R', typtype => 'r' },
{ oid => '4451', array_type_oid => '6150', descr => 'multirange of integers',
  typname => 'int4multirange', typcategory => 'R', typtype => 'm' },
{ oid => '71', typname => 'pg_type', typcategory => 'C' },
{ oid => '9999', typname => 'mood', typcategory => 'E' },
{ oid => '1263', typname => '_cstring', typelem => 'bool', typcategory => 'A' },

]
"""

RANGE_DAT = r"""
[
# ranges
{ rngtypid => 'int4range', rngsubtype => 'int4', rngmultitypid => 'int4multirange' },
]
"""


@pytest.fixture
def types():
    return parse_types(TYPE_DAT, RANGE_DAT)


def test_snake_to_camel_pins():
    assert snake_to_camel("int4_range") == "Int4Range"


def test_snake_to_camel_has_no_underscores():
    for text in ["a_b_c", "_leading", "trailing_", "plain"]:
        assert "_" not in snake_to_camel(text)


def test_snake_to_camel_capitalises_first_letter():
    assert snake_to_camel("bool")[0] == "B"


def test_dat_parser_reads_objects():
    text = "[ { oid => '16', typname => 'bool' }, { oid => '23' }, ]"
    assert DatParser(text).parse_array() == [
        {"oid": "16", "typname": "bool"},
        {"oid": "23"},
    ]


def test_dat_parser_skips_comments_and_whitespace():
    text = "# header\n[\n\t# inner comment\n{ a => 'x' },\n]\n# trailer"
    assert DatParser(text).parse_array() == [{"a": "x"}]


def test_dat_parser_backslash_escapes():
    text = r"[ { descr => 'it\'s a \\ thing' }, ]"
    assert DatParser(text).parse_array() == [{"descr": "it's a \\ thing"}]


def test_dat_parser_empty_array():
    assert DatParser("[]").parse_array() == []


@pytest.mark.parametrize(
    "text",
    [
        "",
        "[ { a => 'x' } ]",
        "[ { a => 'x' }, ] trailing",
        "[ { a => 'unterminated }, ]",
        "[ { a = 'x' }, ]",
        "[ { a => 'x', }, ]",
        "{ a => 'x' },",
    ],
)
def test_dat_parser_errors(text):
    with pytest.raises(DatParseError):
        DatParser(text).parse_array()


def test_parse_errcodes():
    text = (
        "# comment line\n"
        "Section: Class 00 - Successful Completion\n"
        "\n"
        "00000    S    ERRCODE_SUCCESSFUL_COMPLETION       successful_completion\n"
        "01000    W    ERRCODE_WARNING                     warning\n"
        "2F002    E    ERRCODE_S_R_E_MODIFYING_SQL_DATA    modifying_sql_data\n"
        "2F002    E    ERRCODE_OTHER_NAME\n"
    )
    codes = parse_errcodes(text)
    assert list(codes) == ["00000", "01000", "2F002"]
    assert codes["00000"] == ["SUCCESSFUL_COMPLETION"]
    assert codes["2F002"] == ["S_R_E_MODIFYING_SQL_DATA", "OTHER_NAME"]


def test_parse_errcodes_names_have_no_prefix():
    codes = parse_errcodes("42601    E    ERRCODE_SYNTAX_ERROR    syntax_error\n")
    assert all(not name.startswith("ERRCODE_") for names in codes.values() for name in names)


def test_parse_errcodes_malformed_line():
    with pytest.raises(DatParseError):
        parse_errcodes("42601    E\n")


def test_parse_types_oids_sorted_and_filtered(types):
    assert list(types) == sorted(types)
    assert set(types) == {16, 23, 1000, 1007, 1263, 2249, 3904, 3905, 4451, 6150}
    assert 71 not in types
    assert 9999 not in types


def test_parse_types_entries_keyed_by_own_oid(types):
    assert all(oid == t.oid for oid, t in types.items())


def test_parse_types_simple_and_pseudo(types):
    assert types[23].kind == "N"
    assert types[23].element == 0
    assert types[2249].kind == "P"


def test_parse_types_ranges(types):
    assert types[3904].element == 23
    assert types[3904].typtype == "r"
    assert types[4451].element == 23
    assert types[4451].typtype == "m"
    assert types[3904].variant == "Int4Range"
    assert types[3904].ident == "INT4_RANGE"


def test_parse_types_generated_arrays(types):
    for base_oid, array_oid in [(16, 1000), (23, 1007), (3904, 3905)]:
        base, array = types[base_oid], types[array_oid]
        assert array.kind == "A"
        assert array.element == base_oid
        assert array.typtype is None
        assert array.name == "_" + base.name
        assert array.variant == base.variant + "Array"
        assert array.ident == base.ident + "_ARRAY"
        assert array.doc.endswith("&#91;&#93;")


def test_parse_types_explicit_array(types):
    cstring_array = types[1263]
    assert cstring_array.kind == "A"
    assert cstring_array.element == 16
    assert cstring_array.ident.endswith("_ARRAY")
    assert cstring_array.doc.startswith("CSTRING[]")


def test_parse_types_doc_is_escaped(types):
    doc = types[16].doc
    assert doc.startswith("BOOL - ")
    assert "<" not in doc
    assert "&lt;true&gt;" in doc
    assert "&amp;" in doc


def test_parse_types_returns_pgtype(types):
    assert types[23] == PgType(
        oid=23,
        name="int4",
        variant=types[23].variant,
        ident="INT4",
        kind="N",
        typtype=None,
        element=0,
        doc="INT4 - -2 billion to 2 billion integer, 4-byte storage",
    )


def test_parse_types_range_without_typtype():
    type_dat = "[ { oid => '23', typname => 'int4', typcategory => 'N' },"
    type_dat += " { oid => '3904', typname => 'int4range', typcategory => 'R' }, ]"
    range_dat = "[ { rngtypid => 'int4range', rngsubtype => 'int4', rngmultitypid => 'int4' }, ]"
    with pytest.raises(DatParseError):
        parse_types(type_dat, range_dat)


def test_parse_types_invalid_range_typtype():
    type_dat = "[ { oid => '23', typname => 'int4', typcategory => 'N' },"
    type_dat += " { oid => '3904', typname => 'int4range', typcategory => 'R', typtype => 'x' }, ]"
    range_dat = "[ { rngtypid => 'int4range', rngsubtype => 'int4', rngmultitypid => 'int4' }, ]"
    with pytest.raises(DatParseError):
        parse_types(type_dat, range_dat)


def test_parse_types_unknown_range_subtype():
    type_dat = "[ { oid => '3904', typname => 'int4range', typcategory => 'R', typtype => 'r' }, ]"
    range_dat = "[ { rngtypid => 'int4range', rngsubtype => 'missing', rngmultitypid => 'int4range' }, ]"
    with pytest.raises(DatParseError):
        parse_types(type_dat, range_dat)


def test_parse_types_missing_field():
    with pytest.raises(DatParseError):
        parse_types("[ { oid => '23', typcategory => 'N' }, ]", "[]")