"""Pytest configuration and fixtures for rustsplice tests."""

from pathlib import Path

import pytest

from rustsplice.expansion.executor import CompileError, RunError


class FakeToolchain:
    """Records compile/run calls instead of spawning rustc.

    compile() writes a placeholder binary so cleanup can be observed;
    run() returns the configured stdout bytes.
    """

    def __init__(self, stdout: bytes = b"", compile_returncode: int = 0, run_returncode: int = 0):
        self.stdout = stdout
        self.compile_returncode = compile_returncode
        self.run_returncode = run_returncode
        self.compiled: list[dict] = []
        self.ran: list[dict] = []

    def compile(self, source: Path, binary: Path, edition: str) -> None:
        self.compiled.append({
            "source": source,
            "binary": binary,
            "edition": edition,
            "code": source.read_text(encoding="utf-8"),
        })
        if self.compile_returncode != 0:
            raise CompileError(
                f"failed to compile: exit status: {self.compile_returncode}",
                returncode=self.compile_returncode,
            )
        binary.write_bytes(b"\x7fELF placeholder")

    def run(self, binary: Path, cwd: Path | None = None) -> bytes:
        self.ran.append({"binary": binary, "cwd": cwd, "existed": binary.exists()})
        if self.run_returncode != 0:
            raise RunError(
                f"failed to run file: exit status: {self.run_returncode}",
                returncode=self.run_returncode,
            )
        return self.stdout


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create an isolated crate root with a Cargo.toml."""
    crate = tmp_path / "crate"
    crate.mkdir()
    (crate / "Cargo.toml").write_text(
        '[package]\nname = "sample"\nversion = "0.1.0"\nedition = "2021"\n'
    )
    return crate


@pytest.fixture
def make_toolchain():
    """Factory for FakeToolchain instances."""
    return FakeToolchain


@pytest.fixture
def sample_struct_source() -> str:
    """A struct declaration with generics and mixed field types."""
    return '''/// A pair of values.
#[derive(Debug, Clone)]
pub struct Pair<T: Clone, U: Default> {
    pub a: u8,
    b: String,
    pub(crate) first: T,
    second: Vec<U>,
    lookup: HashMap<String, (u16, U)>,
}
'''


@pytest.fixture
def leftover_files():
    """Lists files in a crate root other than Cargo.toml."""

    def list_files(directory: Path) -> list[str]:
        return sorted(p.name for p in directory.iterdir() if p.name != "Cargo.toml")

    return list_files
