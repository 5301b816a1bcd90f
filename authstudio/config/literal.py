"""Parser for configuration object literals embedded in source text.

Configuration files are frequently written in a syntax this process cannot
execute, so when a module cannot be loaded the configuration object literal
is read straight out of the source. The parser understands the data subset
of JavaScript/TypeScript object literals and Python dict literals:

- strings in every quoting style, template literals, numbers, booleans, null
- bare, quoted and numeric property names, trailing commas, comments
- numeric arithmetic (``60 * 60 * 24``) and string concatenation
- TypeScript ``as``/``satisfies`` annotations and non-null assertions

Expressions that are not plain data are kept as explicit values instead of
being guessed at: calls become ``Call``, ``new X()`` becomes ``New``, bare
names and member paths become ``Reference``, environment lookups become
``EnvReference`` and functions become ``FunctionValue``. Anything outside
that subset (spreads, conditionals, regular expressions, unbalanced input)
raises ``ConfigExtractionError``.
"""

import re
import string
import unicodedata
from dataclasses import dataclass
from typing import Any

from authstudio.exceptions import ConfigExtractionError


@dataclass(frozen=True)
class Reference:
    path: str

    def __str__(self):
        return self.path


@dataclass(frozen=True)
class EnvReference:
    name: str
    default: Any = None

    def __str__(self):
        if self.default is None:
            return f"${{{self.name}}}"
        return f"${{{self.name}:-{self.default}}}"


@dataclass(frozen=True)
class Call:
    callee: str
    args: tuple = ()

    def __str__(self):
        return f"{self.callee}()"


@dataclass(frozen=True)
class New:
    callee: str
    args: tuple = ()

    def __str__(self):
        return f"new {self.callee}()"


@dataclass(frozen=True)
class FunctionValue:
    def __str__(self):
        return "[Function]"


EXPRESSION_TYPES = (Reference, EnvReference, Call, New, FunctionValue)

_ENV_ROOTS = ("process.env", "import.meta.env", "Bun.env", "Deno.env", "os.environ")
_ENV_GETTERS = ("os.getenv", "os.environ.get", "Deno.env.get")
_CONSTANTS = {
    "true": True,
    "false": False,
    "True": True,
    "False": False,
    "null": None,
    "None": None,
    "undefined": None,
}

_NUMBER = re.compile(
    r"0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|(?:\d[\d_]*(?:\.[\d_]*)?|\.\d[\d_]*)(?:[eE][+-]?\d+)?"
)
_IDENT = re.compile(r"[A-Za-z_$][\w$]*")
_PUNCTUATORS = (
    "...", "===", "!==", "**", "//", "=>", "??", "||", "&&", "?.", "==", "!=", "<=", ">=",
    "{", "}", "[", "]", "(", ")", ",", ":", ";", ".", "?", "=", "+", "-", "*", "/",
    "%", "!", "<", ">", "&", "|", "~", "^", "@",
)
_OPENERS = {"(": ")", "[": "]", "{": "}"}


@dataclass
class Token:
    kind: str  # "ident", "string", "template", "number", "punct", "eof"
    value: Any
    pos: int


class _Lexer:
    def __init__(self, source: str, pos: int, python: bool):
        self.source = source
        self.pos = pos
        self.python = python
        self._buffer: list[Token] = []

    def peek(self, offset: int = 0) -> Token:
        while len(self._buffer) <= offset:
            self._buffer.append(self._lex())
        return self._buffer[offset]

    def next(self) -> Token:
        token = self.peek()
        self._buffer.pop(0)
        return token

    def _skip_trivia(self):
        source = self.source
        while self.pos < len(source):
            char = source[self.pos]
            if char.isspace():
                self.pos += 1
            elif (self.python and char == "#") or (not self.python and source.startswith("//", self.pos)):
                end = source.find("\n", self.pos)
                self.pos = len(source) if end == -1 else end + 1
            elif source.startswith("/*", self.pos):
                end = source.find("*/", self.pos + 2)
                if end == -1:
                    raise ConfigExtractionError("Unterminated comment", self.pos)
                self.pos = end + 2
            else:
                break

    def _lex(self) -> Token:
        self._skip_trivia()
        source, start = self.source, self.pos
        if start >= len(source):
            return Token("eof", None, start)

        char = source[start]
        if char in "\"'":
            return self._lex_string(char)
        if char == "`":
            return self._lex_template()

        if match := _NUMBER.match(source, start):
            if char.isdigit() or (char == "." and match.end() > start + 1):
                self.pos = match.end()
                if source.startswith("n", self.pos):  # BigInt suffix
                    self.pos += 1
                return Token("number", _to_number(match.group()), start)

        if match := _IDENT.match(source, start):
            self.pos = match.end()
            return Token("ident", match.group(), start)

        for punct in _PUNCTUATORS:
            if source.startswith(punct, start):
                self.pos += len(punct)
                return Token("punct", punct, start)

        raise ConfigExtractionError(f"Unexpected character {char!r}", start)

    def _lex_string(self, quote: str) -> Token:
        source, start = self.source, self.pos
        if self.python and source.startswith(quote * 3, start):
            end = source.find(quote * 3, start + 3)
            if end == -1:
                raise ConfigExtractionError("Unterminated string", start)
            self.pos = end + 3
            return Token("string", source[start + 3:end], start)

        chars = []
        index = start + 1
        while index < len(source):
            char = source[index]
            if char == "\\" and index + 1 < len(source):
                text, index = _unescape(source, index, self.python)
                chars.append(text)
                continue
            if char == quote:
                self.pos = index + 1
                return Token("string", _join(chars, start), start)
            if char == "\n":
                break
            chars.append(char)
            index += 1

        raise ConfigExtractionError("Unterminated string", start)

    def _lex_template(self) -> Token:
        source, start = self.source, self.pos
        index = start + 1
        chars = []
        interpolated = False
        while index < len(source):
            char = source[index]
            if char == "\\" and index + 1 < len(source):
                text, index = _unescape(source, index, python=False)
                chars.append(text)
            elif char == "`":
                self.pos = index + 1
                return Token("template" if interpolated else "string", _join(chars, start), start)
            elif source.startswith("${", index):
                interpolated = True
                end = _match_interpolation(source, index + 2)
                chars.append(source[index:end])
                index = end
            else:
                chars.append(char)
                index += 1

        raise ConfigExtractionError("Unterminated template literal", start)


_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


def _unescape(source: str, index: int, python: bool) -> tuple[str, int]:
    """Decode the escape sequence whose backslash sits at ``index``.

    Returns:
        The decoded text and the offset just past the sequence

    Raises:
        ConfigExtractionError: For escapes that are not decoded here
    """
    char = source[index + 1]
    if char in _SIMPLE_ESCAPES:
        if char == "0" and source[index + 2:index + 3].isdigit():
            raise ConfigExtractionError("Octal escapes are not supported", index)
        return _SIMPLE_ESCAPES[char], index + 2
    if char == "\n":
        return "", index + 2
    if char == "\r":
        return "", index + (3 if source.startswith("\n", index + 2) else 2)
    if char == "x":
        return _code_point(source, index, index + 2, 2)
    if char == "u" and not python and source.startswith("{", index + 2):
        end = source.find("}", index + 3)
        if end == -1:
            raise ConfigExtractionError("Unterminated unicode escape", index)
        return _code_point(source, index, index + 3, end - index - 3)[0], end + 1
    if char == "u":
        return _code_point(source, index, index + 2, 4)
    if char == "U" and python:
        return _code_point(source, index, index + 2, 8)
    if char == "N" and python and source.startswith("{", index + 2):
        end = source.find("}", index + 3)
        if end == -1:
            raise ConfigExtractionError("Unterminated character name escape", index)
        try:
            return unicodedata.lookup(source[index + 3:end]), end + 1
        except KeyError:
            raise ConfigExtractionError("Unknown character name in escape", index) from None
    if char.isalnum():
        raise ConfigExtractionError(f"Unsupported escape sequence '\\{char}'", index)
    return char, index + 2


def _code_point(source: str, index: int, start: int, length: int) -> tuple[str, int]:
    digits = source[start:start + length]
    if not digits or len(digits) != length or any(c not in string.hexdigits for c in digits):
        raise ConfigExtractionError("Malformed hexadecimal escape", index)
    value = int(digits, 16)
    if value > 0x10FFFF:
        raise ConfigExtractionError("Escape is outside the unicode range", index)
    return chr(value), start + length


def _join(chars: list[str], start: int) -> str:
    text = "".join(chars)
    if not any("\ud800" <= c <= "\udfff" for c in text):
        return text
    # \uD83D\uDE00 style surrogate pairs
    try:
        return text.encode("utf-16", "surrogatepass").decode("utf-16")
    except UnicodeDecodeError:
        raise ConfigExtractionError("Unpaired surrogate in string", start) from None


def _match_interpolation(source: str, index: int) -> int:
    depth = 1
    while index < len(source):
        char = source[index]
        if char in "\"'`":
            closing = source.find(char, index + 1)
            if closing == -1:
                break
            index = closing + 1
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1

    raise ConfigExtractionError("Unterminated template interpolation", index)


def _to_number(text: str) -> int | float:
    text = text.replace("_", "")
    lowered = text.lower()
    if lowered.startswith(("0x", "0o", "0b")):
        return int(text, 0)
    if any(c in lowered for c in ".e"):
        value = float(text)
        return int(value) if value.is_integer() and "e" not in lowered else value
    return int(text)


class LiteralParser:
    """Recursive descent parser over a single literal value."""

    def __init__(self, source: str, pos: int = 0, python: bool = False):
        self.source = source
        self.lexer = _Lexer(source, pos, python)

    @property
    def end(self) -> int:
        """Offset just past the last consumed token."""
        return self.lexer.pos if not self.lexer._buffer else self.lexer._buffer[0].pos

    def parse(self) -> Any:
        return self._expression()

    def parse_arguments(self) -> tuple:
        """Parse a parenthesized argument list starting at the current offset."""
        return self._arguments()

    def _error(self, message: str, token: Token | None = None):
        token = token or self.lexer.peek()
        return ConfigExtractionError(message, token.pos)

    def _expect(self, value: str) -> Token:
        token = self.lexer.next()
        if token.kind != "punct" or token.value != value:
            shown = token.value if token.kind != "eof" else "end of input"
            raise self._error(f"Expected {value!r} but found {shown!r}", token)
        return token

    def _at(self, value: str, offset: int = 0) -> bool:
        token = self.lexer.peek(offset)
        return token.kind == "punct" and token.value == value

    def _at_ident(self, value: str, offset: int = 0) -> bool:
        token = self.lexer.peek(offset)
        return token.kind == "ident" and token.value == value

    def _expression(self) -> Any:
        value = self._coalesce()
        while self._at_ident("as") or self._at_ident("satisfies"):
            self.lexer.next()
            self._skip_type()
        if self._at("?"):
            raise self._error("Conditional expressions are not supported")
        return value

    def _skip_type(self):
        token = self.lexer.next()
        if token.kind != "ident":
            raise self._error("Expected a type name", token)
        while self._at("."):
            self.lexer.next()
            self.lexer.next()
        if self._at("<"):
            depth = 0
            while True:
                token = self.lexer.next()
                if token.kind == "eof":
                    raise self._error("Unterminated type arguments", token)
                if token.value == "<":
                    depth += 1
                elif token.value == ">":
                    depth -= 1
                    if depth == 0:
                        break
        while self._at("[") and self._at("]", 1):
            self.lexer.next()
            self.lexer.next()

    def _coalesce(self) -> Any:
        value = self._additive()
        while self._at("||") or self._at("??") or self._at_ident("or"):
            operator = self.lexer.next()
            fallback = self._additive()
            if not isinstance(value, EnvReference) or value.default is not None:
                raise self._error(f"Unsupported use of {operator.value!r}", operator)
            if isinstance(fallback, (*EXPRESSION_TYPES, dict, list)):
                raise self._error(f"Unsupported fallback for {value.name}", operator)
            value = EnvReference(value.name, fallback)
        return value

    def _additive(self) -> Any:
        value = self._term()
        while self._at("+") or self._at("-"):
            operator = self.lexer.next()
            right = self._term()
            value = _arithmetic(operator, value, right)
        return value

    def _term(self) -> Any:
        value = self._unary()
        while any(self._at(op) for op in ("*", "/", "//", "%", "**")):
            operator = self.lexer.next()
            right = self._unary()
            value = _arithmetic(operator, value, right)
        return value

    def _unary(self) -> Any:
        if self._at("-") or self._at("+"):
            operator = self.lexer.next()
            operand = self._unary()
            if not _is_number(operand):
                raise self._error(f"Unary {operator.value!r} on a non-number", operator)
            return -operand if operator.value == "-" else operand
        return self._postfix(self._primary())

    def _postfix(self, value: Any) -> Any:
        while True:
            if self._at(".") or self._at("?."):
                operator = self.lexer.next()
                name = self.lexer.next()
                if name.kind != "ident":
                    raise self._error("Expected a property name", name)
                value = _member(value, name.value, operator)
            elif self._at("["):
                operator = self.lexer.next()
                key = self._expression()
                self._expect("]")
                if not isinstance(key, str):
                    raise self._error("Unsupported computed member access", operator)
                value = _member(value, key, operator)
            elif self._at("("):
                operator = self.lexer.peek()
                args = self._arguments()
                value = _call(value, args, operator)
            elif self._at("!") and not self._at("=", 1):
                self.lexer.next()
            else:
                return value

    def _arguments(self) -> tuple:
        self._expect("(")
        args = []
        while not self._at(")"):
            if self._at("..."):
                raise self._error("Spread arguments are not supported")
            if self.lexer.peek().kind == "ident" and self._at("=", 1):
                # Python keyword argument
                name = self.lexer.next().value
                self.lexer.next()
                args.append({name: self._expression()})
            else:
                args.append(self._expression())
            if not self._at(")"):
                self._expect(",")
        self._expect(")")
        return tuple(args)

    def _primary(self) -> Any:
        token = self.lexer.peek()
        if token.kind in ("string", "number"):
            self.lexer.next()
            return token.value
        if token.kind == "template":
            self.lexer.next()
            return token.value

        if token.kind == "punct":
            if token.value == "{":
                return self._object()
            if token.value == "[":
                return self._array()
            if token.value == "(":
                if self._is_arrow_function():
                    return self._skip_function()
                self.lexer.next()
                value = self._expression()
                self._expect(")")
                return value
            raise self._error(f"Unexpected {token.value!r}", token)

        if token.kind == "ident":
            return self._identifier()

        raise self._error("Unexpected end of input", token)

    def _identifier(self) -> Any:
        token = self.lexer.next()
        name = token.value

        if self._at("=>"):
            self.lexer.next()
            self._skip_function_body()
            return FunctionValue()
        if name in _CONSTANTS:
            return _CONSTANTS[name]
        if name == "async":
            if self._at_ident("function") or self._is_arrow_function() or self._at("=>", 1):
                return self._skip_function()
        if name == "function":
            return self._skip_function(keyword_consumed=True)
        if name == "lambda":
            self._skip_until_delimiter()
            return FunctionValue()
        if name == "new":
            callee = self.lexer.next()
            if callee.kind != "ident":
                raise self._error("Expected a constructor name", callee)
            path = callee.value
            while self._at("."):
                self.lexer.next()
                path = f"{path}.{self.lexer.next().value}"
            args = self._arguments() if self._at("(") else ()
            return New(path, args)
        if name in ("typeof", "void", "delete", "await", "yield"):
            raise self._error(f"Unsupported operator {name!r}", token)

        return Reference(name)

    def _object(self) -> dict:
        self._expect("{")
        result: dict[str, Any] = {}
        while not self._at("}"):
            token = self.lexer.peek()
            if self._at("..."):
                raise self._error("Object spread is not supported", token)
            if self._at("["):
                raise self._error("Computed property names are not supported", token)

            if (
                token.kind == "ident"
                and token.value in ("async", "get", "set")
                and self.lexer.peek(1).kind in ("ident", "string")
                and self._at("(", 2)
            ):
                self.lexer.next()

            key_token = self.lexer.next()
            if key_token.kind not in ("ident", "string", "number"):
                raise self._error("Expected a property name", key_token)
            key = str(key_token.value)

            if self._at(":"):
                self.lexer.next()
                result[key] = self._expression()
            elif self._at("("):
                self._skip_balanced()
                self._skip_function_body()
                result[key] = FunctionValue()
            elif key_token.kind == "ident" and (self._at(",") or self._at("}")):
                result[key] = Reference(key)
            else:
                raise self._error(f"Unexpected token after property {key!r}")

            if not self._at("}"):
                self._expect(",")
        self._expect("}")
        return result

    def _array(self) -> list:
        self._expect("[")
        items = []
        while not self._at("]"):
            if self._at("..."):
                raise self._error("Array spread is not supported")
            items.append(self._expression())
            if not self._at("]"):
                self._expect(",")
        self._expect("]")
        return items

    def _is_arrow_function(self) -> bool:
        offset = 0
        if not self._at("(", offset):
            return False
        depth = 0
        while True:
            token = self.lexer.peek(offset)
            if token.kind == "eof":
                return False
            if token.kind == "punct" and token.value in _OPENERS:
                depth += 1
            elif token.kind == "punct" and token.value in _OPENERS.values():
                depth -= 1
                if depth == 0:
                    following = self.lexer.peek(offset + 1)
                    if following.kind == "punct" and following.value == ":":
                        # TypeScript return type annotation
                        return True
                    return following.kind == "punct" and following.value == "=>"
            offset += 1

    def _skip_function(self, keyword_consumed: bool = False) -> FunctionValue:
        if self._at_ident("function"):
            self.lexer.next()
            keyword_consumed = True
        if keyword_consumed:
            if self._at("*"):
                self.lexer.next()
            if self.lexer.peek().kind == "ident":
                self.lexer.next()
            self._skip_balanced()
            self._skip_function_body()
            return FunctionValue()

        if self.lexer.peek().kind == "ident":
            self.lexer.next()
        else:
            self._skip_balanced()
        if self._at(":"):
            self.lexer.next()
            self._skip_type()
        self._expect("=>")
        self._skip_function_body()
        return FunctionValue()

    def _skip_function_body(self):
        if self._at(":"):
            self.lexer.next()
            self._skip_type()
        if self._at("{"):
            self._skip_balanced()
        else:
            self._skip_until_delimiter()

    def _skip_balanced(self):
        opener = self.lexer.next()
        if opener.kind != "punct" or opener.value not in _OPENERS:
            raise self._error("Expected an opening bracket", opener)
        stack = [_OPENERS[opener.value]]
        while stack:
            token = self.lexer.next()
            if token.kind == "eof":
                raise self._error("Unbalanced brackets", opener)
            if token.kind != "punct":
                continue
            if token.value in _OPENERS:
                stack.append(_OPENERS[token.value])
            elif token.value in _OPENERS.values():
                if token.value != stack.pop():
                    raise self._error("Mismatched brackets", token)

    def _skip_until_delimiter(self):
        while True:
            token = self.lexer.peek()
            if token.kind == "eof":
                raise self._error("Unexpected end of input", token)
            if token.kind == "punct":
                if token.value in _OPENERS:
                    self._skip_balanced()
                    continue
                if token.value in (",", ")", "]", "}"):
                    return
            self.lexer.next()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _arithmetic(operator: Token, left: Any, right: Any) -> Any:
    op = operator.value
    if _is_number(left) and _is_number(right):
        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op == "**":
            return left**right
        if right == 0:
            raise ConfigExtractionError("Division by zero", operator.pos)
        if op == "%":
            return left % right
        if op == "//":
            return left // right
        result = left / right
        return int(result) if result.is_integer() else result

    if op == "+" and isinstance(left, str) and isinstance(right, str):
        return left + right

    raise ConfigExtractionError(f"Unsupported operands for {op!r}", operator.pos)


def _member(value: Any, name: str, operator: Token) -> Any:
    if isinstance(value, Reference):
        path = value.path
        if path in _ENV_ROOTS and f"{path}.{name}" not in _ENV_GETTERS:
            return EnvReference(name)
        return Reference(f"{path}.{name}")
    raise ConfigExtractionError(f"Unsupported member access {name!r}", operator.pos)


def _call(value: Any, args: tuple, operator: Token) -> Any:
    if not isinstance(value, Reference):
        raise ConfigExtractionError("Unsupported call expression", operator.pos)

    if value.path in _ENV_GETTERS and args and isinstance(args[0], str):
        default = args[1] if len(args) > 1 else None
        if isinstance(default, (*EXPRESSION_TYPES, dict, list)):
            raise ConfigExtractionError("Unsupported environment default", operator.pos)
        return EnvReference(args[0], default)
    return Call(value.path, args)


def parse_literal(source: str, pos: int = 0, python: bool = False) -> Any:
    """Parse the literal value starting at ``pos``.

    Args:
        source: Full source text
        pos: Offset of the first character of the literal
        python: Whether ``#`` starts a comment and triple quotes delimit strings

    Returns:
        The parsed value, with non-data expressions represented explicitly

    Raises:
        ConfigExtractionError: If the text at ``pos`` is not a supported literal
    """
    return LiteralParser(source, pos, python).parse()


def to_plain(value: Any) -> Any:
    """Convert parsed values into JSON-compatible data, rendering expressions as text."""
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, EXPRESSION_TYPES):
        return str(value)
    return value
