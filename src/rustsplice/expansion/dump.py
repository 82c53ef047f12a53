"""Debug dump of a declaration's tokens, parsed model and generated impls.

`dump!(struct Foo { ... })` writes three files into the output directory,
overwriting them each time, and expands to nothing.
"""

from pathlib import Path

from ..config import Config
from ..logging import get_logger
from .codegen import Direction, GenerationError, generate
from .declaration import DeclarationError, DerivedDeclaration, parse_declaration
from .tokens import TokenTree, format_tree

logger = get_logger("dump")

TOKENS_FILE = "rustsplice_tokens.txt"
DECLARATION_FILE = "rustsplice_declaration.txt"
GENERATED_FILE = "rustsplice_generated.txt"


def describe_declaration(decl: DerivedDeclaration) -> str:
    """Human-readable listing of a parsed declaration."""
    lines = [
        f"kind: {decl.kind.value}",
        f"name: {decl.name}",
        f"generics: {decl.generics.render() or '(none)'}",
        f"generic arguments: {decl.generics.arguments() or '(none)'}",
    ]
    if decl.generics.where_clause():
        lines.append(f"where clause: {decl.generics.where_clause()}")
    lines.append(f"fields ({len(decl.fields)}):")
    for index, f in enumerate(decl.fields):
        lines.append(f"  {index}: {f.name}: {f.data_type}")
    return "\n".join(lines) + "\n"


def dump(tokens, out_dir: Path | None = None, config: Config | None = None) -> list[TokenTree]:
    """
    Write diagnostic files for a declaration and expand to nothing.

    Parse and generation failures are recorded in the files rather than
    raised. File system errors propagate.

    Returns:
        An empty token list
    """
    out_dir = out_dir if out_dir is not None else Path.cwd()
    trees = list(tokens)

    (out_dir / TOKENS_FILE).write_text(format_tree(trees) + "\n", encoding="utf-8")

    generated = ""
    try:
        decl = parse_declaration(trees)
    except DeclarationError as e:
        description = f"error: {e}\n"
    else:
        description = describe_declaration(decl)
        try:
            generated = "\n".join(generate(decl, d, config) for d in Direction)
        except GenerationError as e:
            generated = f"error: {e}\n"

    (out_dir / DECLARATION_FILE).write_text(description, encoding="utf-8")
    (out_dir / GENERATED_FILE).write_text(generated, encoding="utf-8")

    logger.info("Wrote diagnostic dump to %s", out_dir)
    return []
