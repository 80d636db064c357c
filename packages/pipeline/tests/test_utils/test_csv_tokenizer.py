"""
tests/test_utils/test_csv_tokenizer.py — Tests for the quote-aware line tokenizer.
"""

from __future__ import annotations

from visualclimate_pipeline.utils.csv_tokenizer import header_index, iter_csv_rows, parse_csv_line


class TestParseCsvLine:
    def test_quoted_delimiter_stays_in_field(self):
        assert parse_csv_line('a,"b,c",d') == ["a", "b,c", "d"]

    def test_empty_fields_preserved(self):
        assert parse_csv_line("KOR,,2021,") == ["KOR", "", "2021", ""]

    def test_line_endings_stripped(self):
        assert parse_csv_line("a,b\r\n") == ["a", "b"]
        assert parse_csv_line("a,b\n") == ["a", "b"]

    def test_doubled_quote_vanishes(self):
        assert parse_csv_line('"say ""hi""",x') == ["say hi", "x"]

    def test_custom_delimiter(self):
        assert parse_csv_line("a;b,c;d", delimiter=";") == ["a", "b,c", "d"]

    def test_empty_line_is_one_empty_field(self):
        assert parse_csv_line("") == [""]


class TestHeaderIndex:
    def test_maps_present_names(self):
        header = parse_csv_line("country,year,iso_code,co2")
        assert header_index(header, ["iso_code", "year", "co2"]) == {"iso_code": 2, "year": 1, "co2": 3}

    def test_absent_names_left_out(self):
        assert header_index(["country", "year"], ["iso_code", "year"]) == {"year": 1}

    def test_header_whitespace_ignored(self):
        assert header_index([" ISO3 ", "2020"], ["ISO3"]) == {"ISO3": 0}


class TestIterCsvRows:
    def test_bom_and_blank_lines(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_bytes(b'\xef\xbb\xbfISO3,Name\r\nKOR,"Korea, Rep."\r\n\r\nUSA,United States\r\n')

        rows = list(iter_csv_rows(path))

        assert rows == [["ISO3", "Name"], ["KOR", "Korea, Rep."], ["USA", "United States"]]
