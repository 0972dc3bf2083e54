from dataclasses import dataclass
from typing import Tuple

import pytest

from hostprobe.core.command import ResultRecord
from hostprobe.core.errors import VersionFormatError
from hostprobe.output.formatters import JsonRecordFormatter, TextFormatterBase, format_value, parse_version


@pytest.mark.parametrize("text, expected", [
    ("2.0", (2, 0)),
    ("5.1.19041.1", (5, 1, 19041, 1)),
    ("7.4.0-preview.3", (7, 4, 0)),
    ("7.2.1+a1b2c3", (7, 2, 1)),
    (" 3.0 ", (3, 0)),
])
def test_parse_version(text, expected):
    assert parse_version(text) == expected


@pytest.mark.parametrize("text", ["", "5", "x.y", "1.2.3.4.5", "v5.1", None])
def test_parse_version_malformed(text):
    with pytest.raises(VersionFormatError):
        parse_version(text)


def test_version_format_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_version("abc")


def test_versions_compare_numerically():
    assert parse_version("10.0") > parse_version("9.9")
    assert min(parse_version(v) for v in ["5.1", "2.0", "7.4.1"])[0] == 2


def test_format_value():
    assert format_value(None) == ""
    assert format_value(True) == "True"
    assert format_value(("a", "b")) == "a, b"
    assert format_value(5) == "5"


@dataclass(frozen=True)
class ListingRecord(ResultRecord):
    title: str
    items: Tuple[str, ...]


class ListingFormatter(TextFormatterBase):
    def format_result(self, record):
        self.write_line(record.title + "\n  " + format_value(record.items))
        self.write_line()


def test_text_formatter_splits_embedded_newlines(sink):
    ListingFormatter(sink).format_result(ListingRecord("Title", ("x", "y")))
    assert sink.lines == ["Title", "  x, y", ""]


def test_json_formatter_wraps_record(sink):
    record = ListingRecord("Title", ("x",))
    JsonRecordFormatter(sink, command="Listing", target="WS01").format_result(record)

    assert sink.records == [{
        "Type": "ListingRecord",
        "Command": "Listing",
        "Target": "WS01",
        "Data": {"title": "Title", "items": ("x",)},
    }]
