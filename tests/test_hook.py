"""Tests for the expansion hook."""

import pytest

from rustsplice.config import CodegenConfig, Config
from rustsplice.expansion.codegen import Direction, GenerationError, generate
from rustsplice.expansion.declaration import parse_declaration
from rustsplice.expansion.dump import DECLARATION_FILE, GENERATED_FILE, TOKENS_FILE
from rustsplice.expansion.executor import CompileError
from rustsplice.expansion.hook import Expander, ExpansionError, expand_source, render_source
from rustsplice.expansion.tokens import Punct, compact, tokenize

PAIR = "struct Pair { a: u8, b: String }"


def impls(source: str) -> str:
    decl = parse_declaration(tokenize(source))
    return generate(decl, Direction.DECODE) + generate(decl, Direction.ENCODE)


class TestDerive:
    """Tests for derive expansion."""

    def test_appends_impls_and_keeps_other_derives(self, tmp_path):
        """Codec derives are consumed; others stay on the item."""
        source = f"#[derive(Debug, Decode, Encode)]\n{PAIR}\nfn main() {{}}\n"
        output = expand_source(source, project_dir=tmp_path)

        expected = f"#[derive(Debug)] {PAIR} {impls(PAIR)} fn main() {{}}"
        assert tokenize(output) == tokenize(expected)

    def test_only_codec_derives(self, tmp_path):
        """A derive listing only codec traits is removed entirely."""
        output = expand_source(f"#[derive(Decode)] {PAIR}", project_dir=tmp_path)
        assert "derive" not in output
        assert "impl Decode for Pair" in output
        assert "impl Encode" not in output

    def test_other_attributes_kept(self, tmp_path):
        """Non-derive attributes in the same run are preserved in order."""
        output = expand_source(f"#[repr(C)]\n#[derive(Encode, Clone)]\n{PAIR}", project_dir=tmp_path)
        assert output.startswith("#[repr(C)] #[derive(Clone)] struct Pair")

    def test_generic_struct(self, tmp_path, sample_struct_source):
        """Generic declarations get bounded impl headers."""
        source = sample_struct_source.replace("Debug, Clone", "Decode")
        output = expand_source(source, project_dir=tmp_path)
        assert "impl<T:Clone,U:Default>Decode for Pair<T,U>" in compact(tokenize(output))

    def test_unregistered_derive_untouched(self, tmp_path):
        """Items without codec derives are passed through."""
        source = f"#[derive(Debug)] {PAIR}"
        assert tokenize(expand_source(source, project_dir=tmp_path)) == tokenize(source)

    def test_trait_path_from_config(self, tmp_path):
        """Derives are named by the last segment of the configured path."""
        config = Config(codegen=CodegenConfig(decode_trait="codec::Decode"))
        output = expand_source(f"#[derive(Decode)] {PAIR}", config=config, project_dir=tmp_path)
        assert "impl codec::Decode for Pair" in output

    def test_derive_without_item(self, tmp_path):
        """A codec derive must decorate a struct or enum."""
        with pytest.raises(ExpansionError, match="not followed by a struct"):
            expand_source("#[derive(Decode)] fn f() {}", project_dir=tmp_path)

    def test_enum_derive_fails(self, tmp_path):
        """Codec generation for enums is an error."""
        with pytest.raises(GenerationError):
            expand_source("#[derive(Encode)] enum Tag { a: u8 }", project_dir=tmp_path)


class TestFunctionMacros:
    """Tests for function-like macro expansion."""

    def test_method_splices_output(self, project_dir, make_toolchain, leftover_files):
        """method! is replaced by whatever the snippet printed."""
        expander = Expander(toolchain=make_toolchain(stdout=b"5"), project_dir=project_dir)
        output = expander.expand_source('const X: u8 = method!(five, fn main() { print!("5"); });')

        assert output == "const X: u8 = 5;\n"
        assert leftover_files(project_dir) == []

    def test_method_inside_function_body(self, project_dir, make_toolchain):
        """Call sites nested in groups are expanded too."""
        toolchain = make_toolchain(stdout=b'"Hello"')
        expander = Expander(toolchain=toolchain, project_dir=project_dir)
        output = expander.expand_source(
            'fn main() { let s = method!(hello, fn main() { print!("\\"Hello\\""); }); }'
        )
        assert tokenize(output) == tokenize('fn main() { let s = "Hello"; }')
        assert toolchain.compiled[0]["source"].name == "hello.rs"

    def test_method_output_is_expanded(self, project_dir, make_toolchain):
        """Snippet output may itself contain call sites."""
        toolchain = make_toolchain(stdout=f"#[derive(Decode)] {PAIR}".encode())
        expander = Expander(toolchain=toolchain, project_dir=project_dir)
        output = expander.expand_source("method!(gen, fn main() {});")
        assert "impl Decode for Pair" in output

    def test_method_failure_propagates(self, project_dir, make_toolchain):
        """A failed snippet aborts the expansion."""
        expander = Expander(toolchain=make_toolchain(compile_returncode=1), project_dir=project_dir)
        with pytest.raises(CompileError):
            expander.expand_source("const X: u8 = method!(bad, fn main() {});")

    def test_dump_writes_files_and_expands_to_nothing(self, tmp_path):
        """dump! leaves no tokens behind."""
        output = expand_source("dump! { struct S { a: u8 } }", project_dir=tmp_path)
        assert output == ""
        for name in (TOKENS_FILE, DECLARATION_FILE, GENERATED_FILE):
            assert (tmp_path / name).exists()

    def test_unregistered_macro_untouched(self, tmp_path):
        """Other macros pass through for rustc to handle."""
        source = 'fn main() { println!("{}", vec![1, 2].len()); }'
        assert tokenize(expand_source(source, project_dir=tmp_path)) == tokenize(source)

    def test_custom_macro(self, tmp_path):
        """Additional macros can be registered."""
        expander = Expander(project_dir=tmp_path)
        expander.register_macro("twice", lambda tokens: tokens + [Punct("+")] + tokens)
        assert tokenize(expander.expand_source("const N: u8 = twice!(2);")) == tokenize(
            "const N: u8 = 2 + 2;"
        )

    def test_macro_name_without_bang(self, tmp_path):
        """An identifier that merely shares a macro's name is left alone."""
        source = "fn method(dump: u8) -> u8 { dump }"
        assert tokenize(expand_source(source, project_dir=tmp_path)) == tokenize(source)


class TestRenderSource:
    """Tests for line layout of expanded source."""

    def test_one_item_per_line(self):
        """Items end at a top-level `;` or a closing brace."""
        output = render_source(tokenize("use std::io; struct A; struct B { a: u8 } fn main() {}"))
        assert output.splitlines() == [
            "use std::io;",
            "struct A;",
            "struct B {a: u8}",
            "fn main() {}",
        ]

    def test_empty(self):
        """No tokens render as empty text."""
        assert render_source([]) == ""
