"""Lexer for jinjavm templates.

Turns template source into a lazy stream of ``Token`` objects, each carrying
its ``Span``. The lexer is a small state machine with a state stack:

- ``TEMPLATE``: raw template data outside of any tag.
- ``IN_VARIABLE``: between the variable start and end markers.
- ``IN_BLOCK``: between the block start and end markers.

Comments are skipped entirely. ``{% raw %}...{% endraw %}`` is recognized
here rather than in the parser and produces a single ``TEMPLATE_DATA``
token with the enclosed text.

Whitespace Control:
    A ``-`` right after a start marker (``{%-``, ``{{-``, ``{#-``) strips
    trailing whitespace from the preceding template data. A ``-`` right
    before an end marker (``-%}``, ``-}}``, ``-#}``) strips leading
    whitespace from the following template data.

Errors:
    Malformed input raises ``TemplateSyntaxError`` with the span of the
    offending text. After an error the lexer is latched as failed and
    yields nothing further.

Example:
    >>> [t.type.name for t in Lexer("Hi {{ name }}")]
    ['TEMPLATE_DATA', 'VARIABLE_START', 'IDENT', 'VARIABLE_END']
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from enum import Enum

from jinjavm._types import DEFAULT_SYNTAX, Span, SyntaxConfig, Token, TokenType
from jinjavm.environment.exceptions import ErrorKind, TemplateSyntaxError
from jinjavm.value.core import U128_MAX


class LexerState(Enum):
    TEMPLATE = "template"
    IN_VARIABLE = "in_variable"
    IN_BLOCK = "in_block"


class StartMarker(Enum):
    VARIABLE = "variable"
    BLOCK = "block"
    COMMENT = "comment"


_TWO_CHAR_OPS = {
    "//": TokenType.FLOOR_DIV,
    "**": TokenType.POW,
    "==": TokenType.EQ,
    "!=": TokenType.NE,
    ">=": TokenType.GTE,
    "<=": TokenType.LTE,
}

_ONE_CHAR_OPS = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.MUL,
    "/": TokenType.DIV,
    "%": TokenType.MOD,
    "!": TokenType.BANG,
    ".": TokenType.DOT,
    ",": TokenType.COMMA,
    ":": TokenType.COLON,
    "~": TokenType.TILDE,
    "|": TokenType.PIPE,
    "=": TokenType.ASSIGN,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "(": TokenType.PAREN_OPEN,
    ")": TokenType.PAREN_CLOSE,
    "[": TokenType.BRACKET_OPEN,
    "]": TokenType.BRACKET_CLOSE,
    "{": TokenType.BRACE_OPEN,
    "}": TokenType.BRACE_CLOSE,
}

_OPENERS = frozenset("([{")
_CLOSERS = frozenset(")]}")

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_ASCII_WS_RE = re.compile(r"[\t\n\f\r ]+")
_ASCII_WS = "\t\n\f\r "

_SIMPLE_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "'": "'",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


def _bad_escape() -> TemplateSyntaxError:
    return TemplateSyntaxError(None, kind=ErrorKind.BAD_ESCAPE)


def unescape(s: str) -> str:
    r"""Unescape a string literal body using JSON rules.

    Supports ``\" \\ \/ \' \b \f \n \r \t`` and ``\uXXXX`` including
    surrogate pairs.

    Raises:
        TemplateSyntaxError: ``BAD_ESCAPE`` for unknown or truncated
            escapes and for unpaired surrogates.
    """
    out: list[str] = []
    pending_surrogate: int | None = None
    i = 0
    n = len(s)
    while i < n:
        c = s[i]
        i += 1
        if c != "\\":
            if pending_surrogate is not None:
                raise _bad_escape()
            out.append(c)
            continue
        if i >= n:
            raise _bad_escape()
        c = s[i]
        i += 1
        if c == "u":
            digits = s[i : i + 4]
            if len(digits) != 4 or not all(d in "0123456789abcdefABCDEF" for d in digits):
                raise _bad_escape()
            i += 4
            code = int(digits, 16)
            if pending_surrogate is None:
                if 0xD800 <= code <= 0xDBFF:
                    pending_surrogate = code
                elif 0xDC00 <= code <= 0xDFFF:
                    raise _bad_escape()
                else:
                    out.append(chr(code))
            else:
                if not 0xDC00 <= code <= 0xDFFF:
                    raise _bad_escape()
                combined = 0x10000 + ((pending_surrogate - 0xD800) << 10) + (code - 0xDC00)
                out.append(chr(combined))
                pending_surrogate = None
            continue
        if pending_surrogate is not None:
            raise _bad_escape()
        replacement = _SIMPLE_ESCAPES.get(c)
        if replacement is None:
            raise _bad_escape()
        out.append(replacement)
    if pending_surrogate is not None:
        raise _bad_escape()
    return "".join(out)


class Lexer:
    """Tokenizer over one template source.

    Args:
        source: Template source text.
        syntax: Delimiter configuration.
        in_expr: Start directly inside a variable block, for standalone
            expressions (``Environment.compile_expression``).
    """

    __slots__ = (
        "_balance",
        "_failed",
        "_line",
        "_col",
        "_pos",
        "_source",
        "_stack",
        "_start_re",
        "_syntax",
        "_trim_leading",
    )

    def __init__(
        self,
        source: str,
        syntax: SyntaxConfig = DEFAULT_SYNTAX,
        *,
        in_expr: bool = False,
    ):
        self._source = source
        self._syntax = syntax
        self._pos = 0
        self._line = 1
        self._col = 0
        self._failed = False
        self._trim_leading = False
        self._balance = 0
        self._stack = [LexerState.IN_VARIABLE if in_expr else LexerState.TEMPLATE]
        starts = sorted(
            (syntax.variable_start, syntax.block_start, syntax.comment_start),
            key=len,
            reverse=True,
        )
        self._start_re = re.compile("|".join(re.escape(m) for m in starts))

    def __iter__(self) -> Iterator[Token]:
        return self.tokenize()

    def tokenize(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            if token is None:
                return
            yield token

    @property
    def failed(self) -> bool:
        return self._failed

    # -- position bookkeeping ------------------------------------------------

    def _loc(self) -> tuple[int, int, int]:
        return self._line, self._col, self._pos

    def _span(self, start: tuple[int, int, int]) -> Span:
        return Span(start[0], start[1], start[2], self._line, self._col, self._pos)

    def _advance(self, count: int) -> str:
        skipped = self._source[self._pos : self._pos + count]
        newlines = skipped.count("\n")
        if newlines:
            self._line += newlines
            self._col = len(skipped) - skipped.rfind("\n") - 1
        else:
            self._col += len(skipped)
        self._pos += len(skipped)
        return skipped

    def _rest_startswith(self, prefix: str, offset: int = 0) -> bool:
        return self._source.startswith(prefix, self._pos + offset)

    def _syntax_error(self, message: str, start: tuple[int, int, int] | None = None) -> TemplateSyntaxError:
        self._failed = True
        span = self._span(start or self._loc())
        return TemplateSyntaxError(message, span=span)

    # -- marker helpers ------------------------------------------------------

    def _match_start_marker(self) -> tuple[StartMarker, int] | None:
        syntax = self._syntax
        if self._rest_startswith(syntax.variable_start):
            return StartMarker.VARIABLE, len(syntax.variable_start)
        if self._rest_startswith(syntax.block_start):
            return StartMarker.BLOCK, len(syntax.block_start)
        if self._rest_startswith(syntax.comment_start):
            return StartMarker.COMMENT, len(syntax.comment_start)
        return None

    def _find_start_marker(self) -> tuple[int, bool] | None:
        """Find the next start marker after the current position.

        Returns the absolute offset of the marker and whether it is
        followed by a ``-`` trim marker.
        """
        match = self._start_re.search(self._source, self._pos)
        if match is None:
            return None
        return match.start(), self._source.startswith("-", match.end())

    def _skip_basic_tag(self, offset: int, name: str) -> tuple[int, bool] | None:
        """Match ``[-] name [-]<block_end>`` at ``offset``.

        Returns the length of the matched text and whether the tag ends in
        a trim marker.
        """
        src = self._source
        ptr = offset
        if src.startswith("-", ptr):
            ptr += 1
        while ptr < len(src) and src[ptr] in _ASCII_WS:
            ptr += 1
        if not src.startswith(name, ptr):
            return None
        ptr += len(name)
        while ptr < len(src) and src[ptr] in _ASCII_WS:
            ptr += 1
        trim = False
        if src.startswith("-", ptr):
            ptr += 1
            trim = True
        if not src.startswith(self._syntax.block_end, ptr):
            return None
        ptr += len(self._syntax.block_end)
        return ptr - offset, trim

    # -- token readers -------------------------------------------------------

    def _eat_raw_block(self, skip: int, start: tuple[int, int, int]) -> Token:
        raw = self._skip_basic_tag(self._pos + skip, "raw")
        if raw is None:
            raise self._syntax_error("malformed raw block", start)
        raw_len, trim_start = raw
        self._advance(skip + raw_len)
        block_start = self._syntax.block_start
        search_from = self._pos
        src = self._source
        while True:
            found = src.find(block_start, search_from)
            if found == -1:
                raise self._syntax_error("unexpected end of raw block", start)
            tag_start = found + len(block_start)
            endraw = self._skip_basic_tag(tag_start, "endraw")
            if endraw is not None:
                endraw_len, trim_after = endraw
                body = src[self._pos : found]
                if trim_start:
                    body = body.lstrip()
                if src.startswith("-", tag_start):
                    body = body.rstrip()
                self._advance(tag_start + endraw_len - self._pos)
                self._trim_leading = trim_after
                return Token(TokenType.TEMPLATE_DATA, body, self._span(start))
            search_from = tag_start

    def _eat_template_data(self) -> Token | None:
        if self._trim_leading:
            self._trim_leading = False
            rest = self._source[self._pos :]
            self._advance(len(rest) - len(rest.lstrip()))
        start = self._loc()
        marker = self._find_start_marker()
        if marker is None:
            lead = self._advance(len(self._source) - self._pos)
            span = self._span(start)
        else:
            marker_pos, hyphen = marker
            peeked = self._source[self._pos : marker_pos]
            if hyphen:
                trimmed = peeked.rstrip()
                lead = self._advance(len(trimmed))
                span = self._span(start)
                self._advance(len(peeked) - len(trimmed))
            else:
                lead = self._advance(len(peeked))
                span = self._span(start)
        if not lead:
            return None
        return Token(TokenType.TEMPLATE_DATA, lead, span)

    def _eat_number(self) -> Token:
        start = self._loc()
        src = self._source
        end = self._pos
        while end < len(src) and src[end].isascii() and src[end].isdigit():
            end += 1
        state = "integer"
        while end < len(src):
            c = src[end]
            if c == "." and state == "integer":
                state = "fraction"
            elif c in "eE" and state in ("integer", "fraction"):
                state = "exponent"
            elif c in "+-" and state == "exponent":
                state = "exponent_sign"
            elif c.isascii() and c.isdigit():
                if state == "exponent":
                    state = "exponent_sign"
            else:
                break
            end += 1
        text = self._advance(end - self._pos)
        if state != "integer":
            try:
                return Token(TokenType.FLOAT, float(text), self._span(start))
            except ValueError:
                raise self._syntax_error("invalid float", start) from None
        value = int(text)
        if value > U128_MAX:
            raise self._syntax_error("invalid integer", start)
        return Token(TokenType.INT, value, self._span(start))

    def _eat_identifier(self) -> Token:
        start = self._loc()
        match = _IDENT_RE.match(self._source, self._pos)
        if match is None:
            raise self._syntax_error("unexpected character", start)
        ident = self._advance(match.end() - self._pos)
        return Token(TokenType.IDENT, ident, self._span(start))

    def _eat_string(self, delim: str) -> Token:
        start = self._loc()
        src = self._source
        i = self._pos + 1
        has_escapes = False
        while i < len(src):
            c = src[i]
            if c == "\\":
                has_escapes = True
                i += 2
                continue
            if c == delim:
                break
            i += 1
        else:
            raise self._syntax_error("unexpected end of string", start)
        body = src[self._pos + 1 : i]
        self._advance(i + 1 - self._pos)
        if has_escapes:
            try:
                body = unescape(body)
            except TemplateSyntaxError as exc:
                self._failed = True
                exc.span = self._span(start)
                raise
        return Token(TokenType.STRING, body, self._span(start))

    def _eat_end_marker(self, end_marker: str, token_type: TokenType) -> Token | None:
        start = self._loc()
        if self._rest_startswith("-") and self._rest_startswith(end_marker, 1):
            self._stack.pop()
            self._trim_leading = True
            self._advance(1 + len(end_marker))
            return Token(token_type, None, self._span(start))
        if self._rest_startswith(end_marker):
            self._stack.pop()
            self._advance(len(end_marker))
            return Token(token_type, None, self._span(start))
        return None

    # -- main loop -----------------------------------------------------------

    def next_token(self) -> Token | None:
        """Return the next token, or ``None`` at the end of input."""
        src = self._source
        syntax = self._syntax
        while self._pos < len(src) and not self._failed:
            state = self._stack[-1]
            start = self._loc()

            if state is LexerState.TEMPLATE:
                matched = self._match_start_marker()
                if matched is not None:
                    marker, skip = matched
                    if marker is StartMarker.COMMENT:
                        end = src.find(syntax.comment_end, self._pos + skip)
                        if end == -1:
                            raise self._syntax_error("unexpected end of comment", start)
                        if end > self._pos + skip and src[end - 1] == "-":
                            self._trim_leading = True
                        self._advance(end + len(syntax.comment_end) - self._pos)
                        continue
                    if marker is StartMarker.BLOCK and self._skip_basic_tag(
                        self._pos + skip, "raw"
                    ):
                        return self._eat_raw_block(skip, start)
                    if self._rest_startswith("-", skip):
                        self._advance(skip + 1)
                    else:
                        self._advance(skip)
                    if marker is StartMarker.VARIABLE:
                        self._stack.append(LexerState.IN_VARIABLE)
                        self._balance = 0
                        return Token(TokenType.VARIABLE_START, None, self._span(start))
                    self._stack.append(LexerState.IN_BLOCK)
                    return Token(TokenType.BLOCK_START, None, self._span(start))

                token = self._eat_template_data()
                if token is None:
                    continue
                return token

            ws = _ASCII_WS_RE.match(src, self._pos)
            if ws is not None:
                self._advance(ws.end() - self._pos)
                continue

            if state is LexerState.IN_BLOCK:
                token = self._eat_end_marker(syntax.block_end, TokenType.BLOCK_END)
                if token is not None:
                    return token
            elif self._balance <= 0 and len(self._stack) > 1:
                token = self._eat_end_marker(syntax.variable_end, TokenType.VARIABLE_END)
                if token is not None:
                    return token

            two = src[self._pos : self._pos + 2]
            token_type = _TWO_CHAR_OPS.get(two)
            if token_type is not None:
                self._advance(2)
                return Token(token_type, None, self._span(start))

            c = src[self._pos]
            token_type = _ONE_CHAR_OPS.get(c)
            if token_type is not None:
                if c in _OPENERS:
                    self._balance += 1
                elif c in _CLOSERS:
                    self._balance -= 1
                self._advance(1)
                return Token(token_type, None, self._span(start))
            if c in "'\"":
                return self._eat_string(c)
            if c.isascii() and c.isdigit():
                return self._eat_number()
            return self._eat_identifier()
        return None


def tokenize(source: str, syntax: SyntaxConfig = DEFAULT_SYNTAX, *, in_expr: bool = False) -> Iterator[Token]:
    """Tokenize ``source``; see ``Lexer``."""
    return Lexer(source, syntax, in_expr=in_expr).tokenize()
