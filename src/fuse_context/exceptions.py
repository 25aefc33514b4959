from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FuseError(Exception):
    """Base exception for errors in the fuse_context package."""


@dataclass(frozen=True)
class ConfigurationError(FuseError):
    """Base class for errors that abort the whole run."""


@dataclass(frozen=True)
class SourceDirectoryNotFoundError(ConfigurationError):
    """Raised when the directory to fuse does not exist."""

    directory: Path
    message: str = "The source directory does not exist."

    def __str__(self) -> str:
        return f"{self.message} ({self.directory})"


@dataclass(frozen=True)
class OutputConflictError(ConfigurationError):
    """Raised when an output part already exists and overwrite is disabled."""

    path: Path
    message: str = "The output file already exists and overwrite is disabled."

    def __str__(self) -> str:
        return f"{self.message} ({self.path})"


@dataclass(frozen=True)
class InvalidConfigurationError(ConfigurationError):
    """Raised when a configuration file or option value cannot be used."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class FileProcessingError(FuseError):
    """Raised when a single file cannot be read or transformed."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"
