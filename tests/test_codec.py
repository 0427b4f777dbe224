"""Tests for gemini_metering/config/codec.py — composite string and shell dialects."""

from gemini_metering.config.codec import (
    decode_fish,
    decode_posix,
    decode_resource_attributes,
    encode_fish,
    encode_posix,
    encode_resource_attributes,
    quote_fish,
    quote_posix,
)

TRICKY_VALUES = {
    "PLAIN": "value",
    "COMMAS": "Acme, Inc.",
    "EQUALS": "a=b=c",
    "QUOTE": "O'Brien's",
    "BACKSLASH": "C:\\Users\\dev\\",
    "MIXED": "it's \\ 100%, k=v",
    "SPACES": "  padded  ",
    "EMPTY": "",
}


class TestResourceAttributes:

    def test_escapes_commas_and_equals(self):
        encoded = encode_resource_attributes({"organization.name": "Acme, Inc.", "product.name": "AI=Platform"})
        assert "organization.name=Acme%2C Inc." in encoded
        assert "product.name=AI%3DPlatform" in encoded

    def test_escapes_percent(self):
        assert encode_resource_attributes({"k": "100%"}) == "k=100%25"

    def test_key_order_is_stable(self):
        attrs = {"z": "1", "revenium.api_key": "hak_x_y", "a": "2"}
        encoded = encode_resource_attributes(attrs, key_order=["revenium.api_key"])
        assert encoded == "revenium.api_key=hak_x_y,a=2,z=1"

    def test_round_trip(self):
        attrs = {"revenium.api_key": "hak_t_key", "organization.name": "A, B = C %20"}
        assert decode_resource_attributes(encode_resource_attributes(attrs)) == attrs

    def test_malformed_segments_skipped(self):
        decoded = decode_resource_attributes("garbage,revenium.api_key=hak_a_b,,=orphan")
        assert decoded == {"revenium.api_key": "hak_a_b"}

    def test_splits_on_first_equals(self):
        assert decode_resource_attributes("k=a=b") == {"k": "a=b"}

    def test_empty(self):
        assert decode_resource_attributes("") == {}


class TestPosixDialect:

    def test_quote_idiom(self):
        assert quote_posix("it's") == "'it'\\''s'"

    def test_export_lines(self):
        assert encode_posix({"KEY": "v"}) == "export KEY='v'\n"

    def test_round_trip(self):
        assert decode_posix(encode_posix(TRICKY_VALUES)) == TRICKY_VALUES

    def test_ignores_comments_and_blank_lines(self):
        content = "# header\n\n   # indented comment\nexport A='1'\n"
        assert decode_posix(content) == {"A": "1"}

    def test_accepts_unexported_and_double_quoted(self):
        content = 'A=plain\nexport B="two words"\n'
        assert decode_posix(content) == {"A": "plain", "B": "two words"}


class TestFishDialect:

    def test_quote_escapes(self):
        assert quote_fish("it's") == "'it\\'s'"
        assert quote_fish("a\\b") == "'a\\\\b'"

    def test_set_lines(self):
        assert encode_fish({"KEY": "v"}) == "set -gx KEY 'v'\n"

    def test_round_trip(self):
        assert decode_fish(encode_fish(TRICKY_VALUES)) == TRICKY_VALUES

    def test_ignores_comments_and_other_commands(self):
        content = "# header\n\nset -gx A '1'\necho hello\n"
        assert decode_fish(content) == {"A": "1"}

    def test_unquoted_value(self):
        assert decode_fish("set -gx FLAG true\n") == {"FLAG": "true"}
