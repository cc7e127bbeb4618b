"""Tests for parameter parsing and coercion."""

import pytest

from mcpclient.core.errors import InvalidParameterFormatError
from mcpclient.core.params import ParameterCoercer
from mcpclient.core.schema import ParameterKind


@pytest.fixture
def coercer():
    return ParameterCoercer()


class TestParse:
    """Tests for ParameterCoercer.parse."""

    def test_empty(self, coercer):
        """No tokens means no parameters."""
        assert coercer.parse([]) == {}
        assert coercer.parse(None) == {}

    def test_key_value_inference(self, coercer):
        """Key=value values are type-inferred."""
        result = coercer.parse([
            "name=John", "age=25", "admin=true", "score=9.5", 'note="42"',
        ])

        assert result == {
            "name": "John",
            "age": 25,
            "admin": True,
            "score": 9.5,
            "note": "42",
        }
        assert isinstance(result["age"], int)
        assert isinstance(result["note"], str)

    def test_key_value_keeps_order(self, coercer):
        """Parameters keep the order they were typed in."""
        result = coercer.parse(["z=1", "a=2", "m=3"])
        assert list(result) == ["z", "a", "m"]

    def test_splits_on_first_equals(self, coercer):
        """Only the first '=' separates key from value."""
        assert coercer.parse(["expr=a=b"]) == {"expr": "a=b"}

    def test_empty_value(self, coercer):
        """An empty value stays an empty string."""
        assert coercer.parse(["x="]) == {"x": ""}

    def test_empty_key_rejected(self, coercer):
        """A token with nothing before '=' is an error."""
        with pytest.raises(InvalidParameterFormatError):
            coercer.parse(["=5"])

    def test_json_object(self, coercer):
        """A single JSON object is passed through as-is."""
        result = coercer.parse(['{"name": "John", "tags": ["a", "b"], "n": 2}'])
        assert result == {"name": "John", "tags": ["a", "b"], "n": 2}

    def test_json_array_rejected(self, coercer):
        """Top-level JSON arrays are not a parameter mapping."""
        with pytest.raises(InvalidParameterFormatError):
            coercer.parse(["[1, 2, 3]"])

    def test_malformed_json(self, coercer):
        """Broken JSON reports a JSON error."""
        with pytest.raises(InvalidParameterFormatError, match="Invalid JSON"):
            coercer.parse(['{"a": }'])

    def test_unrecognized_format(self, coercer):
        """Bare words are neither form."""
        with pytest.raises(InvalidParameterFormatError, match="key=value"):
            coercer.parse(["flag"])

    def test_mixed_tokens_rejected(self, coercer):
        """Every token must be key=value once there is more than one."""
        with pytest.raises(InvalidParameterFormatError):
            coercer.parse(["a=1", "loose"])
        with pytest.raises(InvalidParameterFormatError):
            coercer.parse(["a=1", '{"b":2}'])


class TestInferValue:
    """Tests for ParameterCoercer.infer_value."""

    @pytest.mark.parametrize("text,expected", [
        ("true", True),
        ("FALSE", False),
        ("-3", -3),
        ("007", 7),
        ("3.14", 3.14),
        (".5", 0.5),
        ("1.5e3", 1500.0),
        ("12345678901234567890", 12345678901234567890),
        ("hello", "hello"),
        ("1e5", "1e5"),
        ("'true'", "true"),
        ('"25"', "25"),
        ("", ""),
    ])
    def test_inference(self, text, expected):
        """Values are inferred in order: quotes, bool, int, float, string."""
        value = ParameterCoercer.infer_value(text)
        assert value == expected
        assert type(value) is type(expected)


class TestCoerce:
    """Tests for coercing prompted values by parameter kind."""

    def test_string_verbatim(self, coercer):
        """String parameters are never inferred."""
        assert coercer.coerce("42", ParameterKind.STRING) == "42"
        assert coercer.coerce("true", ParameterKind.STRING) == "true"

    def test_number(self, coercer):
        """Number parameters accept integers and decimals."""
        assert coercer.coerce("7", ParameterKind.NUMBER) == 7
        assert coercer.coerce("2.5", ParameterKind.NUMBER) == 2.5

    def test_number_rejects_text(self, coercer):
        with pytest.raises(InvalidParameterFormatError):
            coercer.coerce("abc", ParameterKind.NUMBER)

    def test_boolean(self, coercer):
        """Boolean parameters accept common spellings."""
        assert coercer.coerce("yes", ParameterKind.BOOLEAN) is True
        assert coercer.coerce("Y", ParameterKind.BOOLEAN) is True
        assert coercer.coerce("0", ParameterKind.BOOLEAN) is False
        with pytest.raises(InvalidParameterFormatError):
            coercer.coerce("maybe", ParameterKind.BOOLEAN)

    def test_unknown_kind(self, coercer):
        """Unknown kinds take JSON when it parses, inference otherwise."""
        assert coercer.coerce('{"a": 1}', ParameterKind.UNKNOWN) == {"a": 1}
        assert coercer.coerce("[1, 2]", ParameterKind.UNKNOWN) == [1, 2]
        assert coercer.coerce("{oops}", ParameterKind.UNKNOWN) == "{oops}"
        assert coercer.coerce("true", ParameterKind.UNKNOWN) is True


class TestTokenize:
    """Tests for splitting a typed line into tokens."""

    def test_whitespace(self):
        assert ParameterCoercer.tokenize("name=John  age=25") == ["name=John", "age=25"]

    def test_quoted_value_keeps_spaces(self):
        """Quotes after '=' group words and are kept for inference."""
        tokens = ParameterCoercer.tokenize('message="hello world" n=2')
        assert tokens == ['message="hello world"', "n=2"]

    def test_quoted_json_is_unwrapped(self):
        """A quoted JSON blob becomes the bare JSON text."""
        tokens = ParameterCoercer.tokenize('echo \'{"a": 1, "b": [1, 2]}\'')
        assert tokens == ["echo", '{"a": 1, "b": [1, 2]}']

    def test_bare_json_with_spaces(self):
        """Braces keep an unquoted JSON object together."""
        tokens = ParameterCoercer.tokenize('{"a": 1, "b": "x y"}')
        assert tokens == ['{"a": 1, "b": "x y"}']

    def test_apostrophe_inside_word(self):
        """A quote in the middle of a word is literal."""
        assert ParameterCoercer.tokenize("note=it's fine") == ["note=it's", "fine"]

    def test_unterminated_quote(self):
        with pytest.raises(InvalidParameterFormatError, match="Unterminated"):
            ParameterCoercer.tokenize('msg="oops')

    def test_empty(self):
        assert ParameterCoercer.tokenize("   ") == []

    def test_tokenize_then_parse(self, coercer):
        """Tokens from a typed line parse into typed values."""
        tokens = ParameterCoercer.tokenize('city="New York" days=3 metric=false')
        assert coercer.parse(tokens) == {"city": "New York", "days": 3, "metric": False}


class TestFormatParameters:
    """Tests for parameter display."""

    def test_format(self):
        text = ParameterCoercer.format_parameters({"a": 1, "b": "x", "c": True})
        assert text == "a=1 (int), b=x (str), c=True (bool)"

    def test_format_empty(self):
        assert ParameterCoercer.format_parameters({}) == "(no parameters)"
