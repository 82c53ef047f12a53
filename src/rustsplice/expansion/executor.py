"""Run a Rust snippet at expansion time and splice its output back in.

`method!(name, fn main() { ... })` writes the body to `{name}.rs`, compiles
it with rustc under the host crate's edition, runs the binary, and parses
whatever it printed to stdout as tokens. Printing `5` therefore yields the
integer literal 5, and printing `"Hello"` (quotes included) yields a string
literal.

Both artifacts are deleted on every exit path once created. Names are not
made unique: two invocations sharing a name in the same directory clobber
each other, so callers must pick distinct names.
"""

import subprocess
import sys
from contextlib import ExitStack, contextmanager, suppress
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from ..config import Config
from ..logging import get_logger
from ..models import SnippetInput
from .manifest import read_edition
from .tokens import Ident, LexError, TokenTree, is_separator, render, tokenize

logger = get_logger("executor")

BINARY_SUFFIX = ".exe" if sys.platform == "win32" else ""


class ExecutionError(Exception):
    """Base exception for snippet execution errors."""

    pass


class InvocationError(ExecutionError):
    """Raised when the call-site arguments are malformed."""

    pass


class CompileError(ExecutionError):
    """Raised when the compiler exits unsuccessfully."""

    def __init__(self, message: str, returncode: int, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class RunError(ExecutionError):
    """Raised when the snippet binary exits unsuccessfully."""

    def __init__(self, message: str, returncode: int) -> None:
        super().__init__(message)
        self.returncode = returncode


class OutputError(ExecutionError):
    """Raised when the snippet output is not UTF-8 or not valid tokens."""

    pass


class Toolchain(Protocol):
    """Compile-and-run surface used by execute()."""

    def compile(self, source: Path, binary: Path, edition: str) -> None:
        ...

    def run(self, binary: Path, cwd: Path | None = None) -> bytes:
        ...


class RustcToolchain:
    """Toolchain backed by a rustc subprocess.

    Both steps block until the child exits. There is no timeout: a snippet
    that never terminates hangs the expansion.
    """

    def __init__(self, rustc: str = "rustc", extra_args: list[str] | None = None):
        self.rustc = rustc
        self.extra_args = list(extra_args or [])

    @classmethod
    def from_config(cls, config: Config) -> "RustcToolchain":
        return cls(rustc=config.toolchain.rustc, extra_args=config.toolchain.extra_args)

    def compile(self, source: Path, binary: Path, edition: str) -> None:
        args = [self.rustc, str(source), "--edition", edition, "-o", str(binary), *self.extra_args]
        logger.debug("Compiling: %s", " ".join(args), extra={"path": source, "edition": edition})
        try:
            result = subprocess.run(args, capture_output=True, text=True)
        except OSError as e:
            raise CompileError(f"failed to compile: {e}", returncode=-1) from e

        if result.stderr:
            logger.debug("rustc stderr:\n%s", result.stderr, extra={"returncode": result.returncode})
        if result.returncode != 0:
            raise CompileError(
                f"failed to compile: exit status: {result.returncode}\n{result.stderr}".rstrip(),
                returncode=result.returncode,
                stderr=result.stderr,
            )

    def run(self, binary: Path, cwd: Path | None = None) -> bytes:
        # Absolute, so a bare name is never looked up on PATH
        logger.debug("Running %s", binary)
        try:
            result = subprocess.run([str(binary.absolute())], capture_output=True, cwd=cwd)
        except OSError as e:
            raise RunError(f"failed to run file: {e}", returncode=-1) from e

        if result.stderr:
            logger.debug("snippet stderr:\n%s", result.stderr.decode("utf-8", "replace"))
        if result.returncode != 0:
            raise RunError(
                f"failed to run file: exit status: {result.returncode}",
                returncode=result.returncode,
            )
        return result.stdout


@contextmanager
def delete_on_exit(path: Path):
    """Remove path when the block exits, however it exits.

    Removal is best-effort; a file that cannot be removed is left behind
    silently.
    """
    try:
        yield path
    finally:
        with suppress(OSError):
            path.unlink()
            logger.debug("Deleted %s", path)


def split_invocation(tokens) -> tuple[str, list[TokenTree]]:
    """
    Split `name, body...` into the artifact name and the raw body tokens.

    Raises:
        InvocationError: If the first token is not an identifier or is not
            followed by a comma
    """
    trees = list(tokens)
    if not trees or not isinstance(trees[0], Ident):
        raise InvocationError("could not get path")
    if len(trees) < 2 or not is_separator(trees[1]):
        raise InvocationError("expected comma after filename")
    return trees[0].text, trees[2:]


def binary_path(work_dir: Path, name: str) -> Path:
    """Path of the binary rustc produces for `name`."""
    return work_dir / f"{name}{BINARY_SUFFIX}"


def execute(
    tokens,
    *,
    toolchain: Toolchain | None = None,
    edition: str | None = None,
    project_dir: Path | None = None,
    work_dir: Path | None = None,
    config: Config | None = None,
) -> list[TokenTree]:
    """
    Compile and run a snippet, returning its stdout parsed as tokens.

    Args:
        tokens: Call-site tokens: `name , body...`
        toolchain: Compile/run implementation (default: rustc from config)
        edition: Rust edition (default: read from the manifest in project_dir)
        project_dir: Crate root; holds the manifest and is the snippet's cwd
            (default: current directory)
        work_dir: Directory for the temporary artifacts (default: project_dir)
        config: Configuration (default: Config())

    Returns:
        The token trees printed by the snippet

    Raises:
        ExecutionError: On malformed arguments, compile or run failure, or
            unusable output
        ManifestError: If the edition cannot be read
    """
    config = config or Config()
    name, body = split_invocation(tokens)
    code = render(body)

    try:
        SnippetInput(name=name, body=code)
    except ValidationError as e:
        raise InvocationError(f"invalid snippet name {name!r}: {e.errors()[0]['msg']}") from e

    project_dir = project_dir if project_dir is not None else Path.cwd()
    work_dir = work_dir if work_dir is not None else project_dir
    if edition is None:
        edition = read_edition(project_dir, config.manifest_name)
    if toolchain is None:
        toolchain = RustcToolchain.from_config(config)

    source = work_dir / f"{name}{config.toolchain.source_extension}"
    binary = binary_path(work_dir, name)

    with ExitStack() as cleanup:
        cleanup.enter_context(delete_on_exit(source))
        source.write_text(code, encoding="utf-8")
        logger.debug("Wrote %d bytes to %s", len(code), source)

        toolchain.compile(source, binary, edition)

        # Armed before running: a failing run must not leave the binary behind
        cleanup.enter_context(delete_on_exit(binary))
        stdout = toolchain.run(binary, cwd=project_dir)

    try:
        text = stdout.decode("utf-8")
    except UnicodeDecodeError as e:
        raise OutputError(f"snippet output is not valid UTF-8: {e}") from e

    try:
        result = tokenize(text)
    except LexError as e:
        raise OutputError(f"snippet output is not valid Rust tokens: {e}") from e

    logger.info("Snippet %s produced %d token trees", name, len(result), extra={"snippet": name})
    return result
