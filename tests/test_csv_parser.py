"""Tests for CSV parsing and re-serialization."""

from tablesync.ingestion.csv_parser import ParseWarning, parse_csv, serialize_records


class TestParseCsv:
    def test_headers_and_records(self):
        parsed = parse_csv("name,amount\nalice,10\nbob,20\n")
        assert parsed.headers == ["name", "amount"]
        assert parsed.records == [("alice", "10"), ("bob", "20")]
        assert parsed.warnings == []

    def test_quoted_commas_and_doubled_quotes(self):
        parsed = parse_csv('name,note\n"Smith, J","say ""hi"""\n')
        assert parsed.records == [("Smith, J", 'say "hi"')]

    def test_quoted_newline_stays_in_one_field(self):
        parsed = parse_csv('id,address\n1,"12 Main St\nSpringfield"\n2,Elsewhere\n')
        assert parsed.records == [("1", "12 Main St\nSpringfield"), ("2", "Elsewhere")]

    def test_values_trimmed_and_empty_becomes_none(self):
        parsed = parse_csv(" name , note \r\n  alice  ,\r\n")
        assert parsed.headers == ["name", "note"]
        assert parsed.records == [("alice", None)]

    def test_blank_lines_skipped(self):
        parsed = parse_csv("a,b\n\n   \n1,2\n\n")
        assert parsed.records == [("1", "2")]
        assert parsed.warnings == []

    def test_mismatched_record_dropped_and_parsing_continues(self):
        parsed = parse_csv("a,b\n1,2,3\n4,5\n6\n")
        assert parsed.records == [("4", "5")]
        assert parsed.warnings == [
            ParseWarning(line=2, expected=2, actual=3),
            ParseWarning(line=4, expected=2, actual=1),
        ]

    def test_unbalanced_quote_drops_only_its_line(self):
        parsed = parse_csv('a,b,c\n1,"x,3\n4,5,6\n7,8,9\n')
        assert parsed.records == [("4", "5", "6"), ("7", "8", "9")]
        assert parsed.warnings == [ParseWarning(line=2, expected=3, actual=2)]

    def test_unbalanced_quote_mid_file(self):
        parsed = parse_csv('a,b,c\n1,2,3\n4,"oops\n\n7,8,9\n')
        assert parsed.records == [("1", "2", "3"), ("7", "8", "9")]
        assert [w.line for w in parsed.warnings] == [3]

    def test_empty_input(self):
        for text in ("", "   \n\n"):
            parsed = parse_csv(text)
            assert parsed.headers == []
            assert parsed.records == []

    def test_header_only(self):
        parsed = parse_csv("a,b\n")
        assert parsed.headers == ["a", "b"]
        assert parsed.records == []

    def test_byte_order_mark_removed(self):
        parsed = parse_csv("\ufeffid,name\n1,x\n")
        assert parsed.headers == ["id", "name"]

    def test_duplicate_headers_keep_both_values(self):
        parsed = parse_csv("amount,amount\n1,2\n")
        assert parsed.records == [("1", "2")]
        assert parsed.as_dicts() == [{"amount": "2"}]


class TestSerializeRecords:
    def test_none_written_as_empty_field(self):
        text = serialize_records(["a", "b"], [("x", None)])
        assert text == "a,b\nx,\n"

    def test_special_characters_quoted(self):
        text = serialize_records(["a"], [("x,y",), ('q"r',)])
        assert text == 'a\n"x,y"\n"q""r"\n'

    def test_parse_of_serialized_output_returns_records(self):
        records = [("x,y", None), ('say "hi"', "line\nbreak"), ("plain", "3661.6")]
        parsed = parse_csv(serialize_records(["a", "b"], records))
        assert parsed.headers == ["a", "b"]
        assert parsed.records == records
