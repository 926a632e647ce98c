from crm.utils.csv_parser import parse_csv_line, parse_header, split_lines


def test_parse_csv_line_plain_split():
    assert parse_csv_line("a,b,c") == ["a", "b", "c"]


def test_parse_csv_line_trims_fields():
    assert parse_csv_line("  John Doe , john@example.com ,x") == ["John Doe", "john@example.com", "x"]


def test_parse_csv_line_quoted_comma():
    assert parse_csv_line('"Doe, John",Mohali') == ["Doe, John", "Mohali"]


def test_parse_csv_line_escaped_quote():
    assert parse_csv_line('"He said ""hi""",x') == ['He said "hi"', "x"]


def test_parse_csv_line_empty_and_trailing_fields():
    assert parse_csv_line("") == [""]
    assert parse_csv_line("a,") == ["a", ""]
    assert parse_csv_line(",,") == ["", "", ""]


def test_parse_csv_line_unterminated_quote_does_not_raise():
    assert parse_csv_line('"open,still open') == ["open,still open"]


def test_parse_csv_line_keeps_carriage_return_out():
    assert parse_csv_line("a,b\r") == ["a", "b"]


def test_parse_header_strips_quote_characters():
    assert parse_header('"fullName", "email",phone') == ["fullName", "email", "phone"]


def test_split_lines_drops_blank_lines():
    text = "header\n\nrow1\n   \nrow2\n"
    assert split_lines(text) == ["header", "row1", "row2"]
