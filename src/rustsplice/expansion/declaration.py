"""Parse a struct or enum declaration into a flat model for codegen.

This is deliberately not a Rust parser. It understands:

    [anything] struct|enum Name [<generics>] [where ...] { name: Type, ... }

Fields are split on top-level commas; each needs a name, a lone `:` and
at least one type token. Field attributes, tuple bodies and unit variants
are rejected.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..logging import get_logger
from .tokens import (
    Delimiter,
    Group,
    Ident,
    TokenTree,
    closes_angle,
    compact,
    is_colon_at,
    is_group,
    is_ident,
    is_punct,
    split_top_level,
)

logger = get_logger("declaration")


class DeclarationError(Exception):
    """Raised when tokens do not form a supported declaration."""

    pass


class DeclarationKind(Enum):
    STRUCTURE = "struct"
    ENUMERATION = "enum"


KIND_KEYWORDS = {kind.value: kind for kind in DeclarationKind}


def declaration_kind(token: TokenTree | None) -> DeclarationKind | None:
    """Map a `struct`/`enum` identifier to its kind; None for anything else."""
    if isinstance(token, Ident):
        return KIND_KEYWORDS.get(token.text)
    return None


def _without_default(param: list[TokenTree]) -> list[TokenTree]:
    """Cut a parameter at its depth-zero `=`; `Iterator<Item = u8>` is left alone."""
    depth = 0
    prev = None
    for index, token in enumerate(param):
        if is_punct(token, "<"):
            depth += 1
        elif closes_angle(prev, token):
            depth = max(depth - 1, 0)
        elif depth == 0 and is_punct(token, "="):
            return param[:index]
        prev = token
    return param


@dataclass(frozen=True)
class GenericParameters:
    """Raw tokens between a declaration's name and its body.

    Kept verbatim rather than parsed into parameter records; the two
    renderings needed by an impl header are derived on demand.
    """

    tokens: tuple[TokenTree, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.params()

    def _partition(self) -> tuple[tuple[TokenTree, ...], tuple[TokenTree, ...]]:
        """Split into (parameter list tokens, where clause tokens)."""
        tokens = self.tokens
        if not tokens or is_ident(tokens[0], "where"):
            return (), tokens
        if not is_punct(tokens[0], "<"):
            # Bare list without angle brackets, e.g. `T: Clone, U: Default`
            return tokens, ()

        depth = 0
        prev = None
        for index, token in enumerate(tokens):
            if is_punct(token, "<"):
                depth += 1
            elif closes_angle(prev, token):
                depth -= 1
                if depth == 0:
                    return tokens[1:index], tokens[index + 1 :]
            prev = token
        raise DeclarationError(f"unclosed generic parameter list: {compact(tokens)}")

    def params(self) -> list[list[TokenTree]]:
        """Parameter segments, split on depth-zero commas."""
        inner, _ = self._partition()
        return [segment for segment in split_top_level(inner) if segment]

    def where_clause(self) -> str:
        _, rest = self._partition()
        return compact(rest)

    def render(self) -> str:
        """Parameter list for an impl header: `<T:Clone,U:Default>`.

        Bounds are kept; defaults (`T = u8`, `const N: usize = 4`) are not
        allowed on impls and are dropped.
        """
        if self.is_empty:
            return ""
        return "<" + ",".join(compact(_without_default(param)) for param in self.params()) + ">"

    def bound_free(self) -> str:
        """Parameter names only: `T: Clone, U: Default` gives `T,U`."""
        names = []
        for param in self.params():
            if is_ident(param[0], "const"):
                param = param[1:]
            end = len(param)
            for index, token in enumerate(param):
                if is_colon_at(param, index) or is_punct(token, "="):
                    end = index
                    break
            names.append(compact(param[:end]))
        return ",".join(names)

    def arguments(self) -> str:
        """Bound-free list wrapped for use after the type name: `<T,U>`."""
        if self.is_empty:
            return ""
        return f"<{self.bound_free()}>"


@dataclass(frozen=True)
class Field:
    name: str
    data_type: str


@dataclass(frozen=True)
class DerivedDeclaration:
    kind: DeclarationKind
    name: str
    generics: GenericParameters = GenericParameters()
    fields: tuple[Field, ...] = field(default_factory=tuple)


def _strip_visibility(segment: list[TokenTree]) -> list[TokenTree]:
    if segment and is_ident(segment[0], "pub"):
        if len(segment) > 1 and is_group(segment[1], Delimiter.PARENTHESIS):
            return segment[2:]
        return segment[1:]
    return segment


def parse_fields(tokens) -> tuple[Field, ...]:
    """
    Split a brace body into fields, in declaration order.

    Raises:
        DeclarationError: If a segment lacks a name, a colon or a type
    """
    segments = split_top_level(tokens)
    if not segments[-1]:
        # Trailing comma, or an empty body
        segments.pop()

    fields = []
    for segment in segments:
        segment = _strip_visibility(segment)
        if len(segment) < 3:
            raise DeclarationError(
                f"field must be `name: Type`, got `{compact(segment)}`"
            )
        if not isinstance(segment[0], Ident):
            raise DeclarationError(f"expected field name, got `{compact(segment[:1])}`")
        if not is_colon_at(segment, 1):
            raise DeclarationError(f"expected ':' after field `{segment[0].text}`")
        fields.append(Field(name=segment[0].text, data_type=compact(segment[2:])))
    return tuple(fields)


def parse_declaration(tokens) -> DerivedDeclaration:
    """
    Parse declaration tokens in a single pass.

    Everything up to and including the `struct`/`enum` keyword is
    discarded. The body is the first brace group outside the generic
    parameter list, so bounds such as `Into<(A, B)>` or `where F: Fn(u8)`
    never stand in for it.

    Raises:
        DeclarationError: If no kind keyword is found, the name is not an
            identifier, there is no body, or a field is malformed
    """
    trees = iter(tokens)

    kind = None
    for token in trees:
        kind = declaration_kind(token)
        if kind is not None:
            break
    if kind is None:
        raise DeclarationError("expected `struct` or `enum`")

    name = next(trees, None)
    if not isinstance(name, Ident):
        raise DeclarationError(f"expected identifier after `{kind.value}`")

    generics: list[TokenTree] = []
    body: Group | None = None
    depth = 0
    for token in trees:
        if depth == 0 and is_group(token, Delimiter.BRACE):
            body = token
            break
        if is_punct(token, "<"):
            depth += 1
        elif closes_angle(generics[-1] if generics else None, token):
            depth = max(depth - 1, 0)
        generics.append(token)
    if body is None:
        raise DeclarationError(f"`{kind.value} {name.text}` has no field body")

    decl = DerivedDeclaration(
        kind=kind,
        name=name.text,
        generics=GenericParameters(tuple(generics)),
        fields=parse_fields(body.tokens),
    )
    logger.debug(
        "Parsed %s %s with %d fields", kind.value, decl.name, len(decl.fields)
    )
    return decl
