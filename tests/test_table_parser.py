"""
Tests for Tabular Response Parser
"""

from flipper_totp.protocol.table_parser import column_spans, is_separator, parse

RULED_LISTING = (
    "+-----+---------------------------+--------+----+-----+\r\n"
    "| #   | Name                      | Algo   | Ln | Dur |\r\n"
    "+-----+---------------------------+--------+----+-----+\r\n"
    "| 1   | GitHub                    | sha1   | 6  | 30  |\r\n"
    "| 2   | My Bank                   | sha256 | 8  | 60  |\r\n"
    "+-----+---------------------------+--------+----+-----+\r\n"
)


def test_plain_table():
    """Header/separator/row with whitespace-separated columns"""
    text = "Name  Len\r\n----  ---\r\nabc   6  \r\n"
    assert parse(text) == [{"Name": "abc", "Len": "6"}]


def test_ruled_table():
    records = parse(RULED_LISTING)

    assert records == [
        {"#": "1", "Name": "GitHub", "Algo": "sha1", "Ln": "6", "Dur": "30"},
        {"#": "2", "Name": "My Bank", "Algo": "sha256", "Ln": "8", "Dur": "60"},
    ]


def test_preserves_device_row_order():
    text = "Name  Len\n----  ---\nzeta  6\nalpha 8\nmid   7\n"
    assert [record["Name"] for record in parse(text)] == ["zeta", "alpha", "mid"]


def test_header_only_yields_no_records():
    text = "Name  Len\n----  ---\n"
    assert parse(text) == []


def test_no_table_yields_no_records():
    assert parse("There are no tokens\r\n") == []
    assert parse("") == []


def test_misaligned_rows_are_skipped():
    text = (
        "Name  Len\n"
        "----  ---\n"
        "abc   6\n"
        "too-long-name 7\n"
        "def   8\n"
    )
    assert parse(text) == [
        {"Name": "abc", "Len": "6"},
        {"Name": "def", "Len": "8"},
    ]


def test_ruled_rows_missing_rules_are_skipped():
    text = (
        "+-----+--------+\n"
        "| #   | Name   |\n"
        "+-----+--------+\n"
        "| 1   | ok     |\n"
        "| 2 broken row\n"
        "+-----+--------+\n"
    )
    assert parse(text) == [{"#": "1", "Name": "ok"}]


def test_last_column_is_open_ended():
    text = "Id  Description\n--  -----\n1   longer than the dashes\n"
    assert parse(text) == [{"Id": "1", "Description": "longer than the dashes"}]


def test_blank_rows_are_ignored():
    text = "Name  Len\n----  ---\n\n   \nabc   6\n"
    assert parse(text) == [{"Name": "abc", "Len": "6"}]


def test_leading_output_before_table():
    text = "Some banner text\n\nName  Len\n----  ---\nabc   6\n"
    assert parse(text) == [{"Name": "abc", "Len": "6"}]


def test_missing_cell_is_empty_string():
    text = "Name  Len\n----  ---\nabc\n"
    assert parse(text) == [{"Name": "abc", "Len": ""}]


def test_is_separator():
    assert is_separator("----  ---")
    assert is_separator("+----+---+")
    assert not is_separator("Name  Len")
    assert not is_separator("| 1 | - |")
    assert not is_separator("")


def test_column_spans_plain():
    spans, rules = column_spans("----  ---")
    assert spans == [(0, 4), (6, None)]
    assert rules == []


def test_column_spans_ruled():
    spans, rules = column_spans("+---+--+")
    assert spans == [(1, 4), (5, 7)]
    assert rules == [0, 4, 7]
