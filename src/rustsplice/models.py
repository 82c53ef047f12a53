"""Pydantic models for call-site input validation."""

from pydantic import BaseModel, Field, field_validator

KNOWN_EDITIONS = ["2015", "2018", "2021", "2024"]


class SnippetInput(BaseModel):
    """Input validation for a snippet execution call."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*$",
        description="Artifact name; becomes {name}.rs and the binary name",
    )
    body: str = Field(..., description="Snippet source text")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if v == "_":
            raise ValueError("'_' cannot name a snippet")
        return v


class EditionInput(BaseModel):
    """Input validation for a Rust edition identifier."""

    edition: str = Field(..., pattern=r"^\d{4}$", description="Rust edition year")

    @field_validator("edition")
    @classmethod
    def validate_edition(cls, v: str) -> str:
        if v not in KNOWN_EDITIONS:
            raise ValueError(f"Unknown edition '{v}'. Must be one of: {KNOWN_EDITIONS}")
        return v
