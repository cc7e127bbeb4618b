"""
Parameter coercion for ``invoke-tool``.

Two input forms are accepted and detected automatically:

- key=value pairs, e.g. ``name=John age=25 admin=true``
- a single JSON object, e.g. ``'{"name": "John", "tags": ["a", "b"]}'``

Values in the key=value form are type-inferred: quoted text stays a string,
``true``/``false`` become booleans, integer and decimal literals become
numbers, everything else is passed through as a string.
"""

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from mcpclient.core.errors import InvalidParameterFormatError
from mcpclient.core.schema import ParameterKind

logger = logging.getLogger(__name__)

FORMAT_HINT = (
    "Parameters must be in key=value format (e.g. name=John age=25) "
    "or JSON format (e.g. '{\"name\":\"John\",\"age\":25}')"
)

_INTEGER_RE = re.compile(r"-?[0-9]+")
_DECIMAL_RE = re.compile(r"-?[0-9]*\.[0-9]+(?:[eE][+-]?[0-9]+)?")
_QUOTES = ("'", '"')


class ParameterCoercer:
    """Turns command-line parameter tokens into a typed parameter mapping."""

    def parse(self, tokens: Optional[Sequence[str]]) -> Dict[str, Any]:
        """
        Parse parameter tokens into an ordered mapping.

        Raises:
            InvalidParameterFormatError: if the tokens match neither form,
                the JSON is malformed, or a key is empty.
        """
        if not tokens:
            return {}

        if len(tokens) == 1 and self.looks_like_json(tokens[0]):
            return self._parse_json(tokens[0])

        if self._is_key_value_form(tokens):
            return self._parse_key_value(tokens)

        raise InvalidParameterFormatError(FORMAT_HINT)

    @staticmethod
    def looks_like_json(token: str) -> bool:
        trimmed = token.strip() if token else ""
        if not trimmed:
            return False
        return (trimmed.startswith("{") and trimmed.endswith("}")) or (
            trimmed.startswith("[") and trimmed.endswith("]")
        )

    @staticmethod
    def _is_key_value_form(tokens: Sequence[str]) -> bool:
        for token in tokens:
            if token is None or "=" not in token:
                return False
            stripped = token.strip()
            if stripped.startswith("{") or stripped.startswith("["):
                return False
        return True

    def _parse_json(self, text: str) -> Dict[str, Any]:
        logger.debug("Parsing JSON parameters: %s", text)
        try:
            value = json.loads(text.strip())
        except json.JSONDecodeError as exc:
            raise InvalidParameterFormatError(f"Invalid JSON format: {exc}") from exc

        if not isinstance(value, dict):
            raise InvalidParameterFormatError(
                "JSON parameters must be an object mapping parameter names to values"
            )
        return value

    def _parse_key_value(self, tokens: Sequence[str]) -> Dict[str, Any]:
        parameters: Dict[str, Any] = {}
        for token in tokens:
            key, _, value = token.partition("=")
            key = key.strip()
            if not key:
                raise InvalidParameterFormatError(f"Empty key in parameter: {token}")
            parameters[key] = self.infer_value(value.strip())
            logger.debug(
                "Parsed parameter: %s = %r (%s)",
                key, parameters[key], type(parameters[key]).__name__,
            )
        return parameters

    # ── Value inference ───────────────────────────────────────────────────

    @staticmethod
    def infer_value(value: str) -> Any:
        """Infer a bool, int, float or string from key=value text."""
        if not value:
            return value

        # Quoted text wins over every other inference
        if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
            return value[1:-1]

        if value.lower() in ("true", "false"):
            return value.lower() == "true"

        if _INTEGER_RE.fullmatch(value):
            return int(value)

        if _DECIMAL_RE.fullmatch(value):
            return float(value)

        return value

    def coerce(self, text: str, kind: ParameterKind) -> Any:
        """
        Coerce an interactively prompted value to a parameter's kind.

        Strings are taken verbatim; numbers and booleans must parse;
        parameters of unknown kind fall back to key=value inference.
        """
        if kind == ParameterKind.STRING:
            return text

        if kind == ParameterKind.NUMBER:
            if _INTEGER_RE.fullmatch(text):
                return int(text)
            try:
                return float(text)
            except ValueError:
                raise InvalidParameterFormatError(f"Expected a number, got: {text!r}")

        if kind == ParameterKind.BOOLEAN:
            lowered = text.lower()
            if lowered in ("true", "yes", "y", "1"):
                return True
            if lowered in ("false", "no", "n", "0"):
                return False
            raise InvalidParameterFormatError(f"Expected true or false, got: {text!r}")

        if self.looks_like_json(text):
            try:
                return json.loads(text)
            except json.JSONDecodeError as exc:
                logger.debug("Value %r is not valid JSON (%s); inferring instead", text, exc)
        return self.infer_value(text)

    # ── Tokenizing ────────────────────────────────────────────────────────

    @staticmethod
    def tokenize(text: str) -> List[str]:
        """
        Split a parameter string into tokens.

        Whitespace separates tokens except inside quotes or ``{}``/``[]``
        nesting. A quote opens only at the start of a token or a value, so
        apostrophes inside words are literal. Quote characters are kept so
        that ``d="42"`` still reads as a quoted string later; a token that is
        nothing but a quoted JSON blob is unwrapped.
        """
        tokens: List[str] = []
        buf: List[str] = []
        quote: Optional[str] = None
        depth = 0
        escaped = False

        def flush() -> None:
            if buf:
                tokens.append("".join(buf))
                buf.clear()

        for ch in text:
            if quote:
                buf.append(ch)
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == quote:
                    quote = None
                continue
            # Quotes only open at a token or value start, or inside JSON
            if ch in _QUOTES and (not buf or buf[-1] == "=" or depth > 0):
                quote = ch
                buf.append(ch)
                continue
            if ch in "{[":
                depth += 1
            elif ch in "}]" and depth > 0:
                depth -= 1
            if ch.isspace() and depth == 0:
                flush()
                continue
            buf.append(ch)

        if quote:
            raise InvalidParameterFormatError(f"Unterminated {quote} quote in: {text}")
        flush()

        return [ParameterCoercer._unwrap_quoted_json(t) for t in tokens]

    @staticmethod
    def _unwrap_quoted_json(token: str) -> str:
        if len(token) >= 2 and token[0] in _QUOTES and token[-1] == token[0]:
            inner = token[1:-1]
            if ParameterCoercer.looks_like_json(inner):
                return inner
        return token

    # ── Display ───────────────────────────────────────────────────────────

    @staticmethod
    def format_parameters(parameters: Mapping[str, Any]) -> str:
        """Format parameters for display, e.g. ``a=1 (int), b=x (str)``."""
        if not parameters:
            return "(no parameters)"
        return ", ".join(
            f"{key}={value} ({type(value).__name__})" for key, value in parameters.items()
        )
