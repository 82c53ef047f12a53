"""Token trees for Rust source text.

A token tree is one of four shapes:
- Ident: identifiers and keywords (raw identifiers keep their ``r#`` prefix)
- Literal: numbers, strings, chars and byte forms, kept as source text
- Punct: a single punctuation character with its spacing
- Group: a delimited, nested token sequence

Both expansion pipelines consume and produce flat lists of token trees;
everything that scans or splits them lives here.
"""

import re
from dataclasses import dataclass
from enum import Enum

from ..logging import get_logger

logger = get_logger("tokens")

PUNCT_CHARS = set("~!@#$%^&*-=+|;:,.<>/?")

OPENERS = {"(": "PARENTHESIS", "{": "BRACE", "[": "BRACKET"}
CLOSERS = {")": "PARENTHESIS", "}": "BRACE", "]": "BRACKET"}

SIMPLE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "\\": "\\",
    "0": "\0",
    "'": "'",
    '"': '"',
}

_INT_RE = re.compile(r"^(0x[0-9a-fA-F_]+|0o[0-7_]+|0b[01_]+|[0-9][0-9_]*)([iu](?:8|16|32|64|128|size))?$")
_FLOAT_RE = re.compile(r"^([0-9][0-9_]*(\.[0-9_]*)?([eE][+-]?[0-9_]+)?)(f32|f64)?$")


class LexError(Exception):
    """Raised when text cannot be split into Rust token trees."""

    def __init__(self, message: str, offset: int = -1) -> None:
        super().__init__(message)
        self.offset = offset


class Spacing(Enum):
    """Whether a punct is glued to the punct that follows it."""

    ALONE = "alone"
    JOINT = "joint"


class Delimiter(Enum):
    """Group delimiters."""

    PARENTHESIS = ("(", ")")
    BRACE = ("{", "}")
    BRACKET = ("[", "]")

    @property
    def open(self) -> str:
        return self.value[0]

    @property
    def close(self) -> str:
        return self.value[1]


@dataclass(frozen=True)
class Ident:
    text: str


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Punct:
    char: str
    spacing: Spacing = Spacing.ALONE


@dataclass(frozen=True)
class Group:
    delimiter: Delimiter
    tokens: tuple["TokenTree", ...] = ()


TokenTree = Ident | Literal | Punct | Group


# =============================================================================
# Lexing
# =============================================================================


def _is_ident_start(ch: str) -> bool:
    return ch == "_" or ch.isalpha()


def _is_ident_continue(ch: str) -> bool:
    return ch == "_" or ch.isalnum()


class _Lexer:
    """Single-pass scanner producing token trees."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def peek(self, ahead: int = 0) -> str:
        index = self.pos + ahead
        return self.text[index] if index < len(self.text) else ""

    def run(self) -> list[TokenTree]:
        # Each stack frame: (delimiter, tokens, offset of the opener)
        stack: list[tuple[Delimiter | None, list[TokenTree], int]] = [(None, [], 0)]

        while True:
            self.skip_trivia()
            if self.pos >= len(self.text):
                break

            ch = self.peek()
            start = self.pos

            if ch in OPENERS:
                stack.append((Delimiter[OPENERS[ch]], [], start))
                self.pos += 1
                continue

            if ch in CLOSERS:
                delimiter, tokens, opened_at = stack[-1]
                if delimiter is None:
                    raise LexError(f"unexpected closing delimiter '{ch}'", start)
                if delimiter is not Delimiter[CLOSERS[ch]]:
                    raise LexError(
                        f"mismatched closing delimiter '{ch}' for '{delimiter.open}' "
                        f"opened at offset {opened_at}",
                        start,
                    )
                stack.pop()
                stack[-1][1].append(Group(delimiter, tuple(tokens)))
                self.pos += 1
                continue

            stack[-1][1].extend(self.next_tokens())

        if len(stack) > 1:
            delimiter, _, opened_at = stack[-1]
            raise LexError(f"unclosed delimiter '{delimiter.open}'", opened_at)

        return stack[0][1]

    def skip_trivia(self) -> None:
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch.isspace():
                self.pos += 1
            elif text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                self.pos = len(text) if end == -1 else end + 1
            elif text.startswith("/*", self.pos):
                self.skip_block_comment()
            else:
                return

    def skip_block_comment(self) -> None:
        start = self.pos
        depth = 0
        text = self.text
        while self.pos < len(text):
            if text.startswith("/*", self.pos):
                depth += 1
                self.pos += 2
            elif text.startswith("*/", self.pos):
                depth -= 1
                self.pos += 2
                if depth == 0:
                    return
            else:
                self.pos += 1
        raise LexError("unterminated block comment", start)

    def next_tokens(self) -> list[TokenTree]:
        ch = self.peek()
        nxt = self.peek(1)

        if ch == "r" and nxt == "#" and _is_ident_start(self.peek(2)):
            self.pos += 2
            return [Ident("r#" + self.read_word())]

        # Prefixed string forms: b"", b'', br"", r"", r#""#, c"", cr""
        for prefix in ("br", "cr", "b", "c", "r"):
            if self.text.startswith(prefix, self.pos):
                after = self.peek(len(prefix))
                raw = prefix.endswith("r")
                if after == '"' or (raw and after == "#"):
                    return [self.read_string(len(prefix), raw=raw)]
                if prefix == "b" and after == "'":
                    return [self.read_char(1)]

        if _is_ident_start(ch):
            return [Ident(self.read_word())]

        if ch.isdigit():
            return [self.read_number()]

        if ch == '"':
            return [self.read_string(0, raw=False)]

        if ch == "'":
            if nxt == "\\" or (nxt and self.peek(2) == "'"):
                return [self.read_char(0)]
            if _is_ident_start(nxt):
                # Lifetime or label: tick glued to the identifier that follows
                self.pos += 1
                return [Punct("'", Spacing.JOINT), Ident(self.read_word())]
            raise LexError("invalid character literal", self.pos)

        if ch in PUNCT_CHARS:
            self.pos += 1
            spacing = Spacing.JOINT if self.peek() in PUNCT_CHARS else Spacing.ALONE
            return [Punct(ch, spacing)]

        raise LexError(f"unexpected character {ch!r}", self.pos)

    def read_word(self) -> str:
        start = self.pos
        while self.pos < len(self.text) and _is_ident_continue(self.text[self.pos]):
            self.pos += 1
        return self.text[start : self.pos]

    def read_suffix(self) -> None:
        if _is_ident_start(self.peek()):
            self.read_word()

    def read_number(self) -> Literal:
        start = self.pos
        text = self.text

        if text.startswith(("0x", "0o", "0b"), self.pos):
            self.pos += 2
            while self.pos < len(text) and (text[self.pos].isalnum() or text[self.pos] == "_"):
                self.pos += 1
            return Literal(text[start : self.pos])

        self.skip_digits()
        if self.peek() == "." and self.peek(1) != "." and not _is_ident_start(self.peek(1)):
            self.pos += 1
            self.skip_digits()
        if self.peek() in ("e", "E") and (
            self.peek(1).isdigit() or (self.peek(1) in "+-" and self.peek(2).isdigit())
        ):
            self.pos += 2
            self.skip_digits()
        self.read_suffix()
        return Literal(text[start : self.pos])

    def skip_digits(self) -> None:
        while self.pos < len(self.text) and (self.text[self.pos].isdigit() or self.text[self.pos] == "_"):
            self.pos += 1

    def read_string(self, prefix_len: int, raw: bool) -> Literal:
        start = self.pos
        self.pos += prefix_len
        text = self.text

        if raw:
            hashes = 0
            while self.peek() == "#":
                hashes += 1
                self.pos += 1
            if self.peek() != '"':
                raise LexError("malformed raw string literal", start)
            terminator = '"' + "#" * hashes
            end = text.find(terminator, self.pos + 1)
            if end == -1:
                raise LexError("unterminated raw string literal", start)
            self.pos = end + len(terminator)
        else:
            self.pos += 1
            while True:
                if self.pos >= len(text):
                    raise LexError("unterminated string literal", start)
                ch = text[self.pos]
                if ch == "\\":
                    self.pos += 2
                elif ch == '"':
                    self.pos += 1
                    break
                else:
                    self.pos += 1

        self.read_suffix()
        return Literal(text[start : self.pos])

    def read_char(self, prefix_len: int) -> Literal:
        start = self.pos
        self.pos += prefix_len + 1
        text = self.text
        while True:
            if self.pos >= len(text) or text[self.pos] == "\n":
                raise LexError("unterminated character literal", start)
            ch = text[self.pos]
            if ch == "\\":
                self.pos += 2
            elif ch == "'":
                self.pos += 1
                break
            else:
                self.pos += 1
        self.read_suffix()
        return Literal(text[start : self.pos])


def tokenize(text: str) -> list[TokenTree]:
    """
    Split Rust source text into token trees.

    Comments and whitespace are dropped. Doc comments are comments too and
    do not survive.

    Raises:
        LexError: On unterminated literals or comments, unbalanced
            delimiters, or characters outside the token grammar.
    """
    tokens = _Lexer(text).run()
    logger.debug("Tokenized %d chars into %d top-level trees", len(text), len(tokens))
    return tokens


# =============================================================================
# Rendering
# =============================================================================


def _token_text(token: TokenTree, inner) -> str:
    if isinstance(token, Group):
        return token.delimiter.open + inner(token.tokens) + token.delimiter.close
    if isinstance(token, Punct):
        return token.char
    return token.text


def _is_path_sep_tail(prev_prev: TokenTree | None, prev: TokenTree) -> bool:
    return (
        isinstance(prev_prev, Punct)
        and prev_prev.char == ":"
        and prev_prev.spacing is Spacing.JOINT
        and isinstance(prev, Punct)
        and prev.char == ":"
    )


def _needs_space(prev_prev: TokenTree | None, prev: TokenTree, token: TokenTree) -> bool:
    if isinstance(prev, Punct):
        if prev.spacing is Spacing.JOINT or prev.char == ".":
            return False
        if prev.char in "#!" and isinstance(token, Group) and token.delimiter is not Delimiter.BRACE:
            return False
        if _is_path_sep_tail(prev_prev, prev):
            return False
    if isinstance(token, Punct) and token.char in ",;.":
        return False
    if isinstance(token, Punct) and token.char == ":" and isinstance(prev, (Ident, Group)):
        # `a: T` and the leading half of `a::b` hug the word before them
        return False
    if (
        isinstance(token, Group)
        and token.delimiter is not Delimiter.BRACE
        and isinstance(prev, (Ident, Group))
    ):
        return False
    return True


def render(tokens) -> str:
    """Render token trees as valid Rust source text."""
    parts: list[str] = []
    prev_prev: TokenTree | None = None
    prev: TokenTree | None = None
    for token in tokens:
        if prev is not None and _needs_space(prev_prev, prev, token):
            parts.append(" ")
        parts.append(_token_text(token, render))
        prev_prev, prev = prev, token
    return "".join(parts)


def _is_word(token: TokenTree) -> bool:
    return isinstance(token, (Ident, Literal))


def compact(tokens) -> str:
    """Concatenate token text, spacing only where two words would fuse."""
    parts: list[str] = []
    prev: TokenTree | None = None
    for token in tokens:
        if prev is not None and _is_word(prev) and _is_word(token):
            parts.append(" ")
        parts.append(_token_text(token, compact))
        prev = token
    return "".join(parts)


def format_tree(tokens, depth: int = 0) -> str:
    """Indented one-token-per-line listing of a token tree."""
    lines = []
    indent = "  " * depth
    for token in tokens:
        if isinstance(token, Group):
            lines.append(f"{indent}Group {token.delimiter.name} {token.delimiter.open}{token.delimiter.close}")
            if token.tokens:
                lines.append(format_tree(token.tokens, depth + 1))
        elif isinstance(token, Punct):
            lines.append(f"{indent}Punct {token.char!r} {token.spacing.value}")
        elif isinstance(token, Ident):
            lines.append(f"{indent}Ident {token.text}")
        else:
            lines.append(f"{indent}Literal {token.text}")
    return "\n".join(lines)


# =============================================================================
# Literal values
# =============================================================================


def _escaped_char(digits: str, escape: str) -> str:
    try:
        return chr(int(digits, 16))
    except (ValueError, OverflowError) as e:
        raise LexError(f"invalid escape sequence '{escape}'") from e


def _unescape(body: str, allow_unicode: bool = True) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue

        esc = body[i + 1] if i + 1 < len(body) else ""
        if esc in SIMPLE_ESCAPES:
            out.append(SIMPLE_ESCAPES[esc])
            i += 2
        elif esc == "x":
            digits = body[i + 2 : i + 4]
            if len(digits) != 2:
                raise LexError(f"invalid escape sequence '\\x{digits}'")
            out.append(_escaped_char(digits, "\\x" + digits))
            i += 4
        elif esc == "u" and allow_unicode:
            end = body.find("}", i)
            if body[i + 2 : i + 3] != "{" or end == -1:
                raise LexError(f"malformed unicode escape in {body!r}")
            out.append(_escaped_char(body[i + 3 : end].replace("_", ""), body[i : end + 1]))
            i = end + 1
        elif esc == "\n":
            # Line continuation: skip the newline and leading whitespace
            i += 2
            while i < len(body) and body[i] in " \t\r\n":
                i += 1
        else:
            raise LexError(f"unknown escape sequence '\\{esc}'")
    return "".join(out)


def literal_value(literal: Literal):
    """
    Interpret a literal token as a Python value.

    Integers (any radix, with underscores and type suffixes) become int,
    floats become float, string and char literals become str with escapes
    resolved, byte strings and byte chars become bytes.

    Raises:
        LexError: If the literal text is not a recognised literal form.
    """
    text = literal.text

    for prefix, raw in (("br", True), ("r", True), ("b", False), ("", False)):
        if not text.startswith(prefix):
            continue
        rest = text[len(prefix):]
        if raw and rest[:1] in ('"', "#"):
            hashes = len(rest) - len(rest.lstrip("#"))
            end = rest.rindex('"')
            value = rest[hashes + 1 : end]
            return value.encode() if prefix == "br" else value
        if rest.startswith('"'):
            end = rest.rindex('"')
            value = _unescape(rest[1:end], allow_unicode=prefix != "b")
            return value.encode("latin-1") if prefix == "b" else value
        if rest.startswith("'"):
            end = rest.rindex("'")
            value = _unescape(rest[1:end], allow_unicode=prefix != "b")
            return value.encode("latin-1") if prefix == "b" else value

    match = _INT_RE.match(text)
    if match:
        digits = match.group(1).replace("_", "")
        return int(digits, 0) if digits[:2] in ("0x", "0o", "0b") else int(digits)

    match = _FLOAT_RE.match(text)
    if match:
        return float(match.group(1).replace("_", ""))

    raise LexError(f"not a literal: {text}")


# =============================================================================
# Classification and splitting
# =============================================================================


def is_punct(token: TokenTree | None, char: str) -> bool:
    return isinstance(token, Punct) and token.char == char


def is_separator(token: TokenTree | None) -> bool:
    """True for the `,` that separates fields and generic parameters."""
    return is_punct(token, ",")


def is_group(token: TokenTree | None, delimiter: Delimiter | None = None) -> bool:
    if not isinstance(token, Group):
        return False
    return delimiter is None or token.delimiter is delimiter


def is_ident(token: TokenTree | None, text: str | None = None) -> bool:
    if not isinstance(token, Ident):
        return False
    return text is None or token.text == text


def is_colon_at(tokens, index: int) -> bool:
    """True if tokens[index] is a lone `:` rather than half of a `::`.

    A joint colon is only a path separator when another `:` follows it;
    `a:&str` and `T:?Sized` lex with a joint colon too.
    """
    token = tokens[index]
    if not is_punct(token, ":"):
        return False
    nxt = tokens[index + 1] if index + 1 < len(tokens) else None
    if token.spacing is Spacing.JOINT and is_punct(nxt, ":"):
        return False
    prev = tokens[index - 1] if index > 0 else None
    return not (is_punct(prev, ":") and prev.spacing is Spacing.JOINT)


def closes_angle(prev: TokenTree | None, token: TokenTree) -> bool:
    """True if token is a `>` that closes an angle bracket, not half of `->` or `=>`."""
    if not is_punct(token, ">"):
        return False
    return not (isinstance(prev, Punct) and prev.char in "-=" and prev.spacing is Spacing.JOINT)


def split_top_level(tokens) -> list[list[TokenTree]]:
    """
    Split on `,` separators that are not nested.

    Groups are atomic, and commas between `<` and its matching `>` do not
    split, so `HashMap<K, V>` and `T: Into<(A, B)>` stay in one segment.
    The `>` of `->` and `=>` does not close an angle bracket.
    """
    segments: list[list[TokenTree]] = [[]]
    depth = 0
    prev: TokenTree | None = None
    for token in tokens:
        if is_punct(token, "<"):
            depth += 1
        elif closes_angle(prev, token):
            depth = max(depth - 1, 0)

        if depth == 0 and is_separator(token):
            segments.append([])
        else:
            segments[-1].append(token)
        prev = token
    return segments
