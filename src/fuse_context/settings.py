from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fuse_context.config import WILDCARDS, ProjectTemplate
from fuse_context.exceptions import InvalidConfigurationError

ENV_FILE = find_dotenv(usecwd=True)
if ENV_FILE:
    load_dotenv(ENV_FILE, override=False)

DEFAULT_SPLIT_TOKENS = 800_000
DEFAULT_ENCODING = "cl100k_base"


def default_output_dir() -> Path:
    """Output directory used when none is given: ``$FUSE_OUTPUT_DIR`` or the cwd."""
    env = os.environ.get("FUSE_OUTPUT_DIR", "").strip()
    return Path(env) if env else Path.cwd()


def split_csv(value: Any) -> list[str]:  # noqa: ANN401
    """Split a comma-separated string (or a list of them) into trimmed non-empty items."""
    if value is None:
        return []
    items = [value] if isinstance(value, str) else list(value)
    out: list[str] = []
    for item in items:
        out.extend(p.strip() for p in str(item).split(",") if p.strip())
    return out


def normalize_extension(ext: str) -> str:
    """Add a leading dot to an extension unless it is a wildcard or a bare file name.

    ``cs`` becomes ``.cs``; ``Gemfile`` and ``mix.exs`` (names with an upper-case
    letter or an inner dot) and ``*.*`` are kept as-is.
    """
    ext = ext.strip()
    if not ext or ext in WILDCARDS or ext.startswith("."):
        return ext
    if "." in ext or any(c.isupper() for c in ext):
        return ext
    return f".{ext}"


class Settings(BaseModel):
    """Run options for one fuse invocation."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    directory: Path = Field(default_factory=Path.cwd, description="Directory to fuse.")
    output_dir: Path = Field(default_factory=default_output_dir, description="Directory receiving output parts.")
    template: ProjectTemplate | None = Field(default=None, description="Project template.")
    name: str = Field(default="", description="Output base name; extension defaults to .txt.")
    log_file: str = Field(default="", description="Log file path.")

    include_extensions: list[str] = Field(default_factory=list, description="Extra extensions.")
    exclude_extensions: list[str] = Field(default_factory=list, description="Template extensions to drop.")
    only_extensions: list[str] = Field(default_factory=list, description="Exclusive extension list.")
    exclude_directories: list[str] = Field(default_factory=list, description="Extra excluded directories.")
    exclude_patterns: list[str] = Field(default_factory=list, description="Extra excluded file-name globs.")

    overwrite: bool = Field(default=True, description="Overwrite existing output parts.")
    recursive: bool = Field(default=True, description="Search subdirectories.")
    trim: bool = Field(default=True, description="Trim whitespace on every line.")
    condense: bool = Field(default=True, description="Remove blank lines.")
    max_file_size_kb: int = Field(default=0, ge=0, description="Maximum file size in KB, 0 = unlimited.")
    ignore_binary: bool = Field(default=True, description="Skip binary files.")
    include_metadata: bool = Field(default=False, description="Write size/mtime per file.")
    respect_gitignore: bool = Field(default=True, description="Apply .gitignore rules.")
    exclude_test_projects: bool = Field(default=False, description="Skip all test projects.")
    exclude_unit_test_projects: bool = Field(default=False, description="Skip unit-test projects only.")

    max_tokens: int | None = Field(default=None, ge=1, description="Hard global token cap.")
    split_tokens: int | None = Field(default=DEFAULT_SPLIT_TOKENS, description="Tokens per output part.")
    show_token_count: bool = Field(default=True, description="Report token totals.")
    encoding: str = Field(default=DEFAULT_ENCODING, description="tiktoken encoding, or 'approx'.")
    workers: int = Field(default=0, ge=0, description="Worker threads, 0 = automatic.")

    remove_namespaces: bool = Field(default=False, description="Strip C# namespace declarations.")
    remove_comments: bool = Field(default=False, description="Strip C# comments.")
    remove_regions: bool = Field(default=False, description="Strip C# #region directives.")
    remove_usings: bool = Field(default=False, description="Strip C# using directives.")
    minify_xml: bool = Field(default=True, description="Minify XML and project files.")
    minify_html: bool = Field(default=True, description="Minify HTML and Razor files.")
    aggressive: bool = Field(default=False, description="Aggressive C# whitespace reduction.")
    apply_all: bool = Field(default=False, description="Enable every C# reduction.")

    @field_validator("include_extensions", "exclude_extensions", "only_extensions", mode="before")
    @classmethod
    def _split_extensions(cls, value: Any) -> list[str]:  # noqa: ANN401
        return [normalize_extension(e) for e in split_csv(value)]

    @field_validator("exclude_directories", "exclude_patterns", mode="before")
    @classmethod
    def _split_lists(cls, value: Any) -> list[str]:  # noqa: ANN401
        return [v.replace("\\", "/").strip("/") if "*" not in v else v for v in split_csv(value)]

    @field_validator("split_tokens", mode="before")
    @classmethod
    def _zero_disables_split(cls, value: Any) -> int | None:  # noqa: ANN401
        if value is None:
            return None
        value = int(value)
        if value < 0:
            msg = "split_tokens must be >= 0"
            raise ValueError(msg)
        return value or None

    @field_validator("template", mode="before")
    @classmethod
    def _parse_template(cls, value: Any) -> ProjectTemplate | None:  # noqa: ANN401
        if value is None or value == "":
            return None
        if isinstance(value, ProjectTemplate):
            return value
        return ProjectTemplate(str(value).strip().lower())

    @property
    def remove_csharp_comments(self) -> bool:
        """Whether C# comments are stripped (directly or through ``apply_all``)."""
        return self.remove_comments or self.apply_all

    @property
    def remove_csharp_regions(self) -> bool:
        """Whether C# region directives are stripped."""
        return self.remove_regions or self.apply_all

    @property
    def remove_csharp_namespaces(self) -> bool:
        """Whether C# namespace declarations are stripped."""
        return self.remove_namespaces or self.apply_all

    @property
    def remove_csharp_usings(self) -> bool:
        """Whether C# using directives are stripped."""
        return self.remove_usings or self.apply_all

    @property
    def aggressive_csharp(self) -> bool:
        """Whether aggressive C# reduction is applied."""
        return self.aggressive or self.apply_all


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load option defaults from a YAML file.

    Keys are `Settings` field names; dashes are accepted in place of underscores.

    Args:
        path (str | Path): the YAML file to read.

    Raises:
        InvalidConfigurationError: if the file is missing, unparsable, or not a mapping.

    Returns:
        dict[str, Any]: the option mapping.
    """
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise InvalidConfigurationError(message=f"Cannot read config file {p}: {e}") from e
    except yaml.YAMLError as e:
        raise InvalidConfigurationError(message=f"Invalid YAML in config file {p}: {e}") from e
    if not isinstance(data, dict):
        raise InvalidConfigurationError(message=f"Config file {p} must contain a mapping.")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def build_settings(values: dict[str, Any], config_file: str | Path | None = None) -> Settings:
    """Build `Settings` from explicit values layered over an optional config file.

    Args:
        values (dict[str, Any]): explicitly provided options (highest precedence).
        config_file (str | Path | None): optional YAML file with defaults.

    Raises:
        InvalidConfigurationError: if the merged options do not validate.

    Returns:
        Settings: the validated settings.
    """
    merged: dict[str, Any] = load_config_file(config_file) if config_file else {}
    merged.update(values)
    try:
        return Settings.model_validate(merged)
    except ValidationError as e:
        raise InvalidConfigurationError(message=f"Invalid options: {e}") from e
