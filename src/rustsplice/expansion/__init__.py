"""Expansion components for rustsplice."""

from .codegen import Direction, generate
from .declaration import parse_declaration
from .executor import execute
from .hook import Expander, expand_source
from .manifest import read_edition
from .tokens import render, tokenize

__all__ = [
    "execute",
    "parse_declaration",
    "generate",
    "Direction",
    "Expander",
    "expand_source",
    "read_edition",
    "tokenize",
    "render",
]
