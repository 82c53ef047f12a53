"""Read the host crate's edition from Cargo.toml.

Snippets are compiled as standalone programs, so they need the same
edition as the crate that invokes them. The manifest is read once per
invocation; there is no caching and no retry.
"""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from ..logging import get_logger
from ..models import EditionInput

logger = get_logger("manifest")

DEFAULT_MANIFEST_NAME = "Cargo.toml"

# Maximum manifest file size (1MB)
MAX_MANIFEST_SIZE = 1024 * 1024


class ManifestError(Exception):
    """Base exception for manifest errors."""

    pass


class ManifestNotFoundError(ManifestError):
    """Raised when the manifest is missing or unreadable."""

    pass


class ManifestParseError(ManifestError):
    """Raised when the manifest is not valid TOML."""

    pass


class ManifestFieldError(ManifestError):
    """Raised when package.edition is absent or malformed."""

    pass


def find_manifest(project_dir: Path | None = None, manifest_name: str = DEFAULT_MANIFEST_NAME) -> Path:
    """Return the manifest path in project_dir (default: current directory)."""
    base = project_dir if project_dir is not None else Path.cwd()
    return base / manifest_name


def load_manifest(manifest_path: Path) -> dict:
    """
    Load and parse a Cargo manifest.

    Raises:
        ManifestNotFoundError: If the file is missing or cannot be read
        ManifestParseError: If the file is too large or not valid TOML
    """
    try:
        file_size = manifest_path.stat().st_size
    except OSError as e:
        raise ManifestNotFoundError(f"failed to load {manifest_path}: {e}") from e

    if file_size > MAX_MANIFEST_SIZE:
        raise ManifestParseError(
            f"Manifest file too large: {file_size} > {MAX_MANIFEST_SIZE}"
        )

    try:
        content = manifest_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestNotFoundError(f"failed to load {manifest_path}: {e}") from e

    try:
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise ManifestParseError(f"failed to parse {manifest_path}: {e}") from e


def read_edition(project_dir: Path | None = None, manifest_name: str = DEFAULT_MANIFEST_NAME) -> str:
    """
    Get the edition the host crate is compiled with.

    Args:
        project_dir: Directory holding the manifest (default: current directory)
        manifest_name: Manifest file name

    Returns:
        The package.edition value, e.g. "2021"

    Raises:
        ManifestError: If the manifest cannot be read or lacks the field
    """
    manifest_path = find_manifest(project_dir, manifest_name)
    data = load_manifest(manifest_path)

    package = data.get("package")
    if not isinstance(package, dict):
        raise ManifestFieldError(f"{manifest_path} has no [package] table")

    edition = package.get("edition")
    if edition is None:
        raise ManifestFieldError(f"{manifest_path} has no package.edition")
    if not isinstance(edition, str):
        raise ManifestFieldError(f"package.edition must be a string, got {type(edition).__name__}")

    try:
        edition = EditionInput(edition=edition).edition
    except ValidationError as e:
        raise ManifestFieldError(f"invalid package.edition {edition!r}: {e.errors()[0]['msg']}") from e

    logger.debug("Using edition %s", edition, extra={"path": manifest_path})
    return edition
