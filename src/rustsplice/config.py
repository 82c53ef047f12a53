"""Configuration management for rustsplice.

Supports loading configuration from:
1. Default values
2. Config file (rustsplice.yaml in the project directory, or an explicit path)
3. Environment variables

Configuration precedence: env vars > config file > defaults
"""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .logging import get_logger

logger = get_logger("config")

# Default values
DEFAULT_RUSTC = "rustc"
DEFAULT_SOURCE_EXTENSION = ".rs"
DEFAULT_DECODE_TRAIT = "Decode"
DEFAULT_ENCODE_TRAIT = "Encode"
DEFAULT_MANIFEST_NAME = "Cargo.toml"
CONFIG_FILE_NAME = "rustsplice.yaml"


class ConfigError(Exception):
    """Configuration error."""

    pass


def _is_rust_path(value: str) -> bool:
    segments = value.split("::")
    return all(s.isidentifier() for s in segments)


@dataclass
class ToolchainConfig:
    """Compiler invocation settings."""

    rustc: str = DEFAULT_RUSTC
    extra_args: list[str] = field(default_factory=list)
    source_extension: str = DEFAULT_SOURCE_EXTENSION

    def validate(self) -> None:
        """Validate configuration.

        Raises ConfigError if validation fails.
        """
        if not self.rustc:
            raise ConfigError("rustc must not be empty")

        if not self.source_extension.startswith("."):
            raise ConfigError(
                f"source_extension must start with '.', got {self.source_extension!r}"
            )

        if "--edition" in self.extra_args:
            raise ConfigError("extra_args must not set --edition; it comes from Cargo.toml")

        if shutil.which(self.rustc) is None:
            logger.warning("Compiler %s not found on PATH", self.rustc)


@dataclass
class CodegenConfig:
    """Names used in generated codec implementations."""

    decode_trait: str = DEFAULT_DECODE_TRAIT
    encode_trait: str = DEFAULT_ENCODE_TRAIT

    def validate(self) -> None:
        """Validate configuration.

        Raises ConfigError if validation fails.
        """
        for key in ("decode_trait", "encode_trait"):
            value = getattr(self, key)
            if not _is_rust_path(value):
                raise ConfigError(f"{key} must be a Rust path, got {value!r}")


@dataclass
class Config:
    """Main configuration container."""

    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
    codegen: CodegenConfig = field(default_factory=CodegenConfig)
    manifest_name: str = DEFAULT_MANIFEST_NAME

    def validate(self) -> None:
        """Validate all configuration."""
        self.toolchain.validate()
        self.codegen.validate()

        if not self.manifest_name or Path(self.manifest_name).name != self.manifest_name:
            raise ConfigError(f"manifest_name must be a bare file name, got {self.manifest_name!r}")


def load_config(config_path: Path | None = None, project_dir: Path | None = None) -> Config:
    """
    Load configuration from file and environment.

    Unlike the manifest, a config file is optional; an explicit path that
    does not exist is still an error.

    Args:
        config_path: Explicit path to config file (optional)
        project_dir: Directory to look for rustsplice.yaml (optional)

    Returns:
        Validated Config object
    """
    config = Config()

    if config_path is not None and not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    # Determine config file path
    if config_path is None and project_dir is not None:
        config_path = project_dir / CONFIG_FILE_NAME

    if config_path and config_path.exists():
        config = _load_config_file(config_path)
        logger.debug("Loaded config from %s", config_path)

    # Override with environment variables
    config = _apply_env_overrides(config)

    # Validate
    config.validate()

    return config


def _load_config_file(config_path: Path) -> Config:
    """Load configuration from YAML file."""
    max_size = 1024 * 1024  # 1MB
    if config_path.stat().st_size > max_size:
        raise ConfigError(f"Config file too large: {config_path.stat().st_size} > {max_size}")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return Config()

    if not isinstance(data, dict):
        raise ConfigError("Config file must be a YAML mapping")

    allowed_keys = {"toolchain", "codegen", "manifest_name"}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        logger.warning("Unknown config keys ignored: %s", unknown_keys)

    toolchain_data = data.get("toolchain", {})
    if not isinstance(toolchain_data, dict):
        raise ConfigError("'toolchain' must be a mapping")

    extra_args = toolchain_data.get("extra_args", [])
    if not isinstance(extra_args, list):
        raise ConfigError("'toolchain.extra_args' must be a list")

    toolchain = ToolchainConfig(
        rustc=str(toolchain_data.get("rustc", DEFAULT_RUSTC)),
        extra_args=[str(arg) for arg in extra_args],
        source_extension=str(toolchain_data.get("source_extension", DEFAULT_SOURCE_EXTENSION)),
    )

    codegen_data = data.get("codegen", {})
    if not isinstance(codegen_data, dict):
        raise ConfigError("'codegen' must be a mapping")

    codegen = CodegenConfig(
        decode_trait=str(codegen_data.get("decode_trait", DEFAULT_DECODE_TRAIT)),
        encode_trait=str(codegen_data.get("encode_trait", DEFAULT_ENCODE_TRAIT)),
    )

    return Config(
        toolchain=toolchain,
        codegen=codegen,
        manifest_name=str(data.get("manifest_name", DEFAULT_MANIFEST_NAME)),
    )


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    env_rustc = os.environ.get("RUSTSPLICE_RUSTC")
    if env_rustc:
        config.toolchain.rustc = env_rustc
        logger.debug("Using compiler from env: %s", env_rustc)

    env_decode = os.environ.get("RUSTSPLICE_DECODE_TRAIT")
    if env_decode:
        config.codegen.decode_trait = env_decode

    env_encode = os.environ.get("RUSTSPLICE_ENCODE_TRAIT")
    if env_encode:
        config.codegen.encode_trait = env_encode

    return config


def save_config(config: Config, config_path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration to save
        config_path: Path to write config file
    """
    data = {
        "toolchain": {
            "rustc": config.toolchain.rustc,
            "extra_args": list(config.toolchain.extra_args),
            "source_extension": config.toolchain.source_extension,
        },
        "codegen": {
            "decode_trait": config.codegen.decode_trait,
            "encode_trait": config.codegen.encode_trait,
        },
        "manifest_name": config.manifest_name,
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    logger.info("Saved config to %s", config_path)
