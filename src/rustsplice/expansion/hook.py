"""Expansion hook: find macro call sites in Rust source and splice results.

Two call shapes are recognised:
- function-like macros, `name!( ... )` with any delimiter, replaced by the
  tokens the macro returns
- derive macros named in `#[derive(...)]`, whose generated impls are
  appended after the struct they decorate

Macros registered by default:
- `method!(name, <program>)` runs a snippet and splices its stdout
- `dump!(<declaration>)` writes diagnostic files and expands to nothing
- `#[derive(Decode)]`, `#[derive(Encode)]` generate codec impls

Anything not registered passes through untouched, so the output is still
ordinary Rust for rustc/cargo to compile. Comments are not preserved.
"""

from pathlib import Path
from typing import Callable

from ..config import Config
from ..logging import get_logger
from .codegen import Direction, generate
from .declaration import declaration_kind, parse_declaration
from .dump import dump
from .executor import Toolchain, execute
from .tokens import (
    Delimiter,
    Group,
    Ident,
    Punct,
    TokenTree,
    closes_angle,
    compact,
    is_group,
    is_ident,
    is_punct,
    render,
    split_top_level,
    tokenize,
)

logger = get_logger("hook")

EXECUTE_MACRO = "method"
DUMP_MACRO = "dump"

FunctionMacro = Callable[[list[TokenTree]], list[TokenTree]]
DeriveMacro = Callable[[list[TokenTree]], str]


class ExpansionError(Exception):
    """Raised when a call site is not shaped the way its macro requires."""

    pass


def _derive_names(attribute: Group) -> list[str] | None:
    """Names listed in a `derive(...)` attribute body, or None if not a derive."""
    inner = attribute.tokens
    if len(inner) != 2 or not is_ident(inner[0], "derive") or not is_group(inner[1], Delimiter.PARENTHESIS):
        return None
    return [compact(segment) for segment in split_top_level(inner[1].tokens) if segment]


def _item_end(trees: list[TokenTree], start: int) -> int:
    """Index just past the struct/enum item beginning at start."""
    seen_kind = False
    depth = 0
    prev: TokenTree | None = None
    for index in range(start, len(trees)):
        token = trees[index]
        if not seen_kind:
            seen_kind = declaration_kind(token) is not None
        elif is_punct(token, "<"):
            depth += 1
        elif closes_angle(prev, token):
            depth = max(depth - 1, 0)
        elif depth == 0 and is_group(token, Delimiter.BRACE):
            return index + 1
        elif depth == 0 and is_punct(token, ";"):
            return index + 1
        prev = token
    raise ExpansionError("derive attribute is not followed by a struct or enum")


def render_source(tokens) -> str:
    """Render top-level items one per line."""
    lines: list[str] = []
    current: list[TokenTree] = []
    trees = list(tokens)
    for index, token in enumerate(trees):
        current.append(token)
        nxt = trees[index + 1] if index + 1 < len(trees) else None
        ends_item = is_punct(token, ";") or (
            is_group(token, Delimiter.BRACE) and not isinstance(nxt, Punct)
        )
        if ends_item:
            lines.append(render(current))
            current = []
    if current:
        lines.append(render(current))
    return "\n".join(lines) + "\n" if lines else ""


class Expander:
    """
    Registry of macros plus the walk that applies them.

    Args:
        config: Configuration (default: Config())
        toolchain: Toolchain for snippet execution (default: rustc)
        project_dir: Crate root holding Cargo.toml (default: cwd)
        work_dir: Where snippet artifacts are written (default: project_dir)
    """

    def __init__(
        self,
        config: Config | None = None,
        toolchain: Toolchain | None = None,
        project_dir: Path | None = None,
        work_dir: Path | None = None,
    ):
        self.config = config or Config()
        self.toolchain = toolchain
        self.project_dir = project_dir if project_dir is not None else Path.cwd()
        self.work_dir = work_dir
        self.function_macros: dict[str, FunctionMacro] = {}
        self.derive_macros: dict[str, DeriveMacro] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self.register_macro(EXECUTE_MACRO, self._execute)
        self.register_macro(DUMP_MACRO, self._dump)

        codegen = self.config.codegen
        for trait, direction in (
            (codegen.decode_trait, Direction.DECODE),
            (codegen.encode_trait, Direction.ENCODE),
        ):
            # Derives are written by their last path segment
            self.register_derive(trait.split("::")[-1], self._codec_derive(direction))

    def register_macro(self, name: str, func: FunctionMacro) -> None:
        self.function_macros[name] = func

    def register_derive(self, name: str, func: DeriveMacro) -> None:
        self.derive_macros[name] = func

    def _execute(self, tokens: list[TokenTree]) -> list[TokenTree]:
        return execute(
            tokens,
            toolchain=self.toolchain,
            project_dir=self.project_dir,
            work_dir=self.work_dir,
            config=self.config,
        )

    def _dump(self, tokens: list[TokenTree]) -> list[TokenTree]:
        return dump(tokens, out_dir=self.project_dir, config=self.config)

    def _codec_derive(self, direction: Direction) -> DeriveMacro:
        def derive(item: list[TokenTree]) -> str:
            return generate(parse_declaration(item), direction, self.config)

        return derive

    def expand_tokens(self, tokens) -> list[TokenTree]:
        """Expand every registered call site in a token sequence."""
        trees = list(tokens)
        out: list[TokenTree] = []
        index = 0

        while index < len(trees):
            token = trees[index]

            if (
                isinstance(token, Ident)
                and token.text in self.function_macros
                and index + 2 < len(trees)
                and is_punct(trees[index + 1], "!")
                and is_group(trees[index + 2])
            ):
                logger.debug("Expanding %s!", token.text)
                result = self.function_macros[token.text](list(trees[index + 2].tokens))
                out.extend(self.expand_tokens(result))
                index += 3
                continue

            if is_punct(token, "#") and index + 1 < len(trees) and is_group(trees[index + 1], Delimiter.BRACKET):
                consumed = self._expand_derives(trees, index, out)
                if consumed:
                    index += consumed
                    continue

            if isinstance(token, Group):
                token = Group(token.delimiter, tuple(self.expand_tokens(token.tokens)))
            out.append(token)
            index += 1

        return out

    def _expand_derives(self, trees: list[TokenTree], start: int, out: list[TokenTree]) -> int:
        """
        Handle the attributes and item starting at trees[start].

        Returns the number of tokens consumed, or 0 when no registered
        derive is involved.
        """
        requested: list[str] = []
        attributes: list[TokenTree] = []
        index = start

        # Gather the whole run of outer attributes before the item
        while index + 1 < len(trees) and is_punct(trees[index], "#") and is_group(trees[index + 1], Delimiter.BRACKET):
            attribute = trees[index + 1]
            names = _derive_names(attribute)
            if names is None:
                attributes.extend(trees[index : index + 2])
            else:
                ours = [name for name in names if name in self.derive_macros]
                rest = [name for name in names if name not in self.derive_macros]
                requested.extend(ours)
                if rest:
                    attributes.extend(tokenize(f"#[derive({', '.join(rest)})]"))
            index += 2

        if not requested:
            return 0

        end = _item_end(trees, index)
        item = self.expand_tokens(trees[index:end])
        out.extend(attributes)
        out.extend(item)
        for name in requested:
            logger.debug("Deriving %s", name)
            out.extend(tokenize(self.derive_macros[name](item)))
        return end - start

    def expand_source(self, text: str) -> str:
        """Tokenize Rust source, expand it, and render it back to text."""
        return render_source(self.expand_tokens(tokenize(text)))


def expand_source(text: str, **kwargs) -> str:
    """Expand source text with a default Expander; kwargs go to Expander()."""
    return Expander(**kwargs).expand_source(text)
