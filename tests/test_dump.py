"""Tests for the diagnostic dump."""

from rustsplice.expansion.codegen import Direction, generate
from rustsplice.expansion.declaration import parse_declaration
from rustsplice.expansion.dump import (
    DECLARATION_FILE,
    GENERATED_FILE,
    TOKENS_FILE,
    describe_declaration,
    dump,
)
from rustsplice.expansion.tokens import tokenize

SOURCE = "struct Pair<T: Clone> where T: Default { a: u8, b: T }"


class TestDump:
    """Tests for dump()."""

    def test_expands_to_nothing(self, tmp_path):
        """The macro output is empty."""
        assert dump(tokenize(SOURCE), out_dir=tmp_path) == []

    def test_writes_token_tree(self, tmp_path):
        """The tokens file lists the input tree."""
        dump(tokenize(SOURCE), out_dir=tmp_path)
        lines = (tmp_path / TOKENS_FILE).read_text().splitlines()
        assert lines[:3] == ["Ident struct", "Ident Pair", "Punct '<' alone"]
        assert "Group BRACE {}" in lines
        assert "  Ident a" in lines

    def test_writes_declaration(self, tmp_path):
        """The declaration file shows the parsed model."""
        dump(tokenize(SOURCE), out_dir=tmp_path)
        assert (tmp_path / DECLARATION_FILE).read_text() == (
            "kind: struct\n"
            "name: Pair\n"
            "generics: <T:Clone>\n"
            "generic arguments: <T>\n"
            "where clause: where T:Default\n"
            "fields (2):\n"
            "  0: a: u8\n"
            "  1: b: T\n"
        )

    def test_writes_generated_impls(self, tmp_path):
        """The generated file holds both impls."""
        dump(tokenize(SOURCE), out_dir=tmp_path)
        decl = parse_declaration(tokenize(SOURCE))
        text = (tmp_path / GENERATED_FILE).read_text()
        assert generate(decl, Direction.DECODE) in text
        assert generate(decl, Direction.ENCODE) in text

    def test_overwrites(self, tmp_path):
        """Each dump replaces the previous files."""
        dump(tokenize(SOURCE), out_dir=tmp_path)
        dump(tokenize("struct Other { z: u64 }"), out_dir=tmp_path)
        assert "Pair" not in (tmp_path / DECLARATION_FILE).read_text()
        assert "Pair" not in (tmp_path / GENERATED_FILE).read_text()

    def test_parse_error_recorded(self, tmp_path):
        """A declaration that does not parse is described, not raised."""
        dump(tokenize("fn main() {}"), out_dir=tmp_path)
        assert (tmp_path / DECLARATION_FILE).read_text().startswith("error: expected `struct`")
        assert (tmp_path / GENERATED_FILE).read_text() == ""
        assert (tmp_path / TOKENS_FILE).read_text().startswith("Ident fn")

    def test_generation_error_recorded(self, tmp_path):
        """An enum is described, and its generation error recorded."""
        dump(tokenize("enum Tag { a: u8 }"), out_dir=tmp_path)
        assert (tmp_path / DECLARATION_FILE).read_text().startswith("kind: enum\n")
        assert (tmp_path / GENERATED_FILE).read_text().startswith("error: cannot derive")

    def test_defaults_to_current_directory(self, tmp_path, monkeypatch):
        """Without an output directory, files go to cwd."""
        monkeypatch.chdir(tmp_path)
        dump(tokenize(SOURCE))
        assert (tmp_path / TOKENS_FILE).exists()


class TestDescribeDeclaration:
    """Tests for the declaration listing."""

    def test_no_generics(self):
        """Missing generics are shown as none, with no where line."""
        text = describe_declaration(parse_declaration(tokenize("struct Unit {}")))
        assert text == (
            "kind: struct\n"
            "name: Unit\n"
            "generics: (none)\n"
            "generic arguments: (none)\n"
            "fields (0):\n"
        )
