"""CLI for rustsplice.

Commands:
- expand: Expand macro call sites in a Rust source file
- run: Execute a snippet file and print the tokens it produces
- derive: Print codec impls for a struct declaration
- dump: Write diagnostic files for a declaration
- edition: Show the edition read from Cargo.toml
- init: Write a default rustsplice.yaml
"""

import logging
import sys
from pathlib import Path

import click

from .config import CONFIG_FILE_NAME, Config, ConfigError, load_config, save_config
from .expansion.codegen import Direction, GenerationError, generate
from .expansion.declaration import DeclarationError, parse_declaration
from .expansion.dump import DECLARATION_FILE, GENERATED_FILE, TOKENS_FILE, dump
from .expansion.executor import ExecutionError, execute
from .expansion.hook import Expander, ExpansionError
from .expansion.manifest import ManifestError, read_edition
from .expansion.tokens import Ident, LexError, Punct, render, tokenize
from .logging import setup_logging

# Every failure aborts the command; nothing is retried or downgraded
FATAL_ERRORS = (
    ConfigError,
    LexError,
    ManifestError,
    ExecutionError,
    DeclarationError,
    GenerationError,
    ExpansionError,
)


def _fail(error) -> None:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        _fail(f"{path} is not UTF-8: {e}")


def _load_config(ctx) -> Config:
    try:
        return load_config(ctx.obj["config_path"], ctx.obj["project_dir"])
    except ConfigError as e:
        _fail(e)


@click.group()
@click.option(
    "--project-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=Path("."),
    help="Crate root holding Cargo.toml (default: current directory)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help=f"Config file (default: <project-dir>/{CONFIG_FILE_NAME})",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
@click.pass_context
def main(ctx, project_dir: Path, config_path: Path | None, verbose: bool, json_logs: bool):
    """rustsplice - run Rust at build time and derive binary codecs."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING, json_format=json_logs)
    ctx.ensure_object(dict)
    ctx.obj["project_dir"] = project_dir.resolve()
    ctx.obj["config_path"] = config_path


@main.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Write here instead of stdout")
@click.pass_context
def expand(ctx, source: Path, output: Path | None):
    """Expand method!, dump! and codec derives in SOURCE."""
    config = _load_config(ctx)
    expander = Expander(config=config, project_dir=ctx.obj["project_dir"])

    try:
        text = expander.expand_source(_read_source(source))
    except FATAL_ERRORS as e:
        _fail(e)

    if output:
        output.write_text(text, encoding="utf-8")
        click.echo(f"Expanded {source} -> {output}", err=True)
    else:
        click.echo(text, nl=False)


@main.command("run")
@click.argument("name")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def run_cmd(ctx, name: str, source: Path):
    """Compile and run SOURCE as snippet NAME, printing its output tokens."""
    config = _load_config(ctx)

    try:
        tokens = [Ident(name), Punct(",")] + tokenize(_read_source(source))
        result = execute(tokens, project_dir=ctx.obj["project_dir"], config=config)
    except FATAL_ERRORS as e:
        _fail(e)

    click.echo(render(result))


@main.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--direction",
    type=click.Choice(["decode", "encode", "both"]),
    default="both",
    help="Which impl to generate",
)
@click.pass_context
def derive(ctx, source: Path, direction: str):
    """Print the codec impls for the struct declared in SOURCE."""
    config = _load_config(ctx)
    directions = list(Direction) if direction == "both" else [Direction(direction)]

    try:
        decl = parse_declaration(tokenize(_read_source(source)))
        impls = [generate(decl, d, config) for d in directions]
    except FATAL_ERRORS as e:
        _fail(e)

    click.echo("\n".join(impls), nl=False)


@main.command("dump")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--out-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory for the dump files (default: project dir)",
)
@click.pass_context
def dump_cmd(ctx, source: Path, out_dir: Path | None):
    """Write token, model and generated-code dumps for SOURCE."""
    config = _load_config(ctx)
    out_dir = out_dir or ctx.obj["project_dir"]

    try:
        dump(tokenize(_read_source(source)), out_dir=out_dir, config=config)
    except (LexError, OSError) as e:
        _fail(e)

    for name in (TOKENS_FILE, DECLARATION_FILE, GENERATED_FILE):
        click.echo(f"  {out_dir / name}")


@main.command()
@click.pass_context
def edition(ctx):
    """Show the edition snippets are compiled with."""
    config = _load_config(ctx)

    try:
        click.echo(read_edition(ctx.obj["project_dir"], config.manifest_name))
    except ManifestError as e:
        _fail(e)


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(ctx, force: bool):
    """Write a default config file to the project directory."""
    config_path = ctx.obj["config_path"] or ctx.obj["project_dir"] / CONFIG_FILE_NAME
    if config_path.exists() and not force:
        click.echo(f"{config_path} already exists (use --force to overwrite)")
        sys.exit(1)

    save_config(Config(), config_path)
    click.echo(f"Wrote {config_path}")


if __name__ == "__main__":
    main()
