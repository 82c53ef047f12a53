"""rustsplice - build-time code synthesis for Rust crates."""

__version__ = "0.1.0"
