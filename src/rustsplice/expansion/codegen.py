"""Generate binary codec impls from a parsed declaration.

Generation happens in two steps: build an ImplBlock (header parts plus an
ordered statement list), then render it to text. Field statements follow
declaration order exactly; names and type text are used verbatim.

For `struct Pair<T: Clone> { a: u8, b: T }` the decode impl renders as:

    impl<T:Clone> Decode for Pair<T> {
        fn decode<DecodeReader: std::io::Read>(stream: &mut DecodeReader) -> Self {
            Self {
                a: <u8 as Decode>::decode(stream),
                b: <T as Decode>::decode(stream),
            }
        }
    }

Struct literal fields are evaluated in the order written, so `a` is read
from the stream before `b`.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..config import CodegenConfig, Config
from ..logging import get_logger
from .declaration import DeclarationKind, DerivedDeclaration

logger = get_logger("codegen")

INDENT = "    "
READER_PARAM = "DecodeReader"
WRITER_PARAM = "EncodeWriter"
STREAM = "stream"


class GenerationError(Exception):
    """Raised when a declaration cannot be turned into an impl."""

    pass


class Direction(Enum):
    DECODE = "decode"
    ENCODE = "encode"


@dataclass
class Method:
    """One trait method: signature plus ordered body statements.

    With a `wrapper`, statements are comma-terminated initializers inside
    `wrapper { ... }`; otherwise they are plain `;` statements.
    """

    signature: str
    statements: list[str] = field(default_factory=list)
    wrapper: str | None = None

    def render(self, depth: int = 1) -> list[str]:
        pad = INDENT * depth
        lines = [f"{pad}{self.signature} {{"]
        if self.wrapper is not None:
            lines.append(f"{pad}{INDENT}{self.wrapper} {{")
            lines.extend(f"{pad}{INDENT * 2}{stmt}," for stmt in self.statements)
            lines.append(f"{pad}{INDENT}}}")
        else:
            lines.extend(f"{pad}{INDENT}{stmt};" for stmt in self.statements)
        lines.append(f"{pad}}}")
        return lines


@dataclass
class ImplBlock:
    """A trait impl for one type, ready to render."""

    trait_name: str
    self_type: str
    generics: str = ""
    where_clause: str = ""
    methods: list[Method] = field(default_factory=list)

    def header(self) -> str:
        header = f"impl{self.generics} {self.trait_name} for {self.self_type}"
        if self.where_clause:
            header += f" {self.where_clause}"
        return header

    def render(self) -> str:
        lines = [f"{self.header()} {{"]
        for method in self.methods:
            lines.extend(method.render())
        lines.append("}")
        return "\n".join(lines) + "\n"


def _decode_method(decl: DerivedDeclaration, trait: str) -> Method:
    statements = [
        f"{f.name}: <{f.data_type} as {trait}>::decode({STREAM})" for f in decl.fields
    ]
    return Method(
        signature=(
            f"fn decode<{READER_PARAM}: std::io::Read>"
            f"({STREAM}: &mut {READER_PARAM}) -> Self"
        ),
        statements=statements,
        wrapper="Self",
    )


def _encode_method(decl: DerivedDeclaration, trait: str) -> Method:
    statements = [
        f"<{f.data_type} as {trait}>::encode(self.{f.name}, {STREAM})" for f in decl.fields
    ]
    if not statements:
        statements = [f"let _ = {STREAM}"]
    return Method(
        signature=f"fn encode<{WRITER_PARAM}: std::io::Write>(self, {STREAM}: &mut {WRITER_PARAM})",
        statements=statements,
    )


def build_impl(
    decl: DerivedDeclaration,
    direction: Direction,
    config: CodegenConfig | Config | None = None,
) -> ImplBlock:
    """
    Build the codec impl for a declaration without rendering it.

    Raises:
        GenerationError: For enumerations, which have no codec layout
    """
    if isinstance(config, Config):
        config = config.codegen
    config = config or CodegenConfig()

    if decl.kind is not DeclarationKind.STRUCTURE:
        raise GenerationError(
            f"cannot derive a codec for {decl.kind.value} {decl.name}: only structs are supported"
        )

    if direction is Direction.DECODE:
        trait = config.decode_trait
        method = _decode_method(decl, trait)
    else:
        trait = config.encode_trait
        method = _encode_method(decl, trait)

    return ImplBlock(
        trait_name=trait,
        self_type=f"{decl.name}{decl.generics.arguments()}",
        generics=decl.generics.render(),
        where_clause=decl.generics.where_clause(),
        methods=[method],
    )


def generate(
    decl: DerivedDeclaration,
    direction: Direction,
    config: CodegenConfig | Config | None = None,
) -> str:
    """Generate the codec impl source text for one direction."""
    block = build_impl(decl, direction, config)
    logger.debug(
        "Generated %s impl for %s (%d fields)", direction.value, decl.name, len(decl.fields)
    )
    return block.render()
