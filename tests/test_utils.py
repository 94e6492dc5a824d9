from app.umbra.utils import clean_str, parse_bool


def test_clean_str_coerces_payload_values():
    assert clean_str("  Main wallet ") == "Main wallet"
    assert clean_str(42) == "42"
    assert clean_str(12.5) == "12.5"
    assert clean_str(None) == ""
    assert clean_str(True) == ""
    assert clean_str(["a@b.co"]) == ""
    assert clean_str({"email": "a@b.co"}) == ""


def test_parse_bool_reads_string_flags():
    assert parse_bool("false") is False
    assert parse_bool("0") is False
    assert parse_bool("true") is True
    assert parse_bool(True) is True
    assert parse_bool(None, default=True) is True
