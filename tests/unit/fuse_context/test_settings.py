from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from fuse_context.config import ProjectTemplate
from fuse_context.exceptions import InvalidConfigurationError
from fuse_context.settings import (
    DEFAULT_SPLIT_TOKENS,
    Settings,
    build_settings,
    default_output_dir,
    load_config_file,
    normalize_extension,
    split_csv,
)


@pytest.mark.unit
def test_defaults() -> None:
    settings = Settings()

    assert settings.split_tokens == DEFAULT_SPLIT_TOKENS
    assert settings.max_tokens is None
    assert settings.overwrite is True
    assert settings.respect_gitignore is True
    assert settings.include_metadata is False
    assert settings.template is None


@pytest.mark.unit
def test_split_csv_accepts_strings_and_lists() -> None:
    assert split_csv(" a, b ,,c ") == ["a", "b", "c"]
    assert split_csv(["a,b", "c"]) == ["a", "b", "c"]
    assert split_csv(None) == []


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [("cs", ".cs"), (".md", ".md"), ("Gemfile", "Gemfile"), ("mix.exs", "mix.exs"), ("*.*", "*.*")],
)
def test_normalize_extension(raw: str, expected: str) -> None:
    assert normalize_extension(raw) == expected


@pytest.mark.unit
def test_list_fields_are_normalised() -> None:
    settings = Settings(
        include_extensions="cs, md",
        exclude_directories="bin, obj\\Debug/",
        exclude_patterns="*.g.cs",
    )

    assert settings.include_extensions == [".cs", ".md"]
    assert settings.exclude_directories == ["bin", "obj/Debug"]
    assert settings.exclude_patterns == ["*.g.cs"]


@pytest.mark.unit
def test_zero_split_disables_splitting() -> None:
    assert Settings(split_tokens=0).split_tokens is None


@pytest.mark.unit
def test_negative_limits_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(split_tokens=-1)
    with pytest.raises(ValidationError):
        Settings(max_tokens=0)
    with pytest.raises(ValidationError):
        Settings(max_file_size_kb=-5)


@pytest.mark.unit
def test_template_is_parsed_case_insensitively() -> None:
    assert Settings(template="DotNet").template is ProjectTemplate.DOTNET
    assert Settings(template="").template is None


@pytest.mark.unit
def test_unknown_options_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(colour="red")


@pytest.mark.unit
def test_default_output_dir_reads_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FUSE_OUTPUT_DIR", str(tmp_path))
    assert default_output_dir() == tmp_path

    monkeypatch.delenv("FUSE_OUTPUT_DIR")
    monkeypatch.chdir(tmp_path)
    assert default_output_dir() == Path.cwd()


@pytest.mark.unit
def test_load_config_file_accepts_dashed_keys(tmp_path: Path) -> None:
    config = tmp_path / "fuse.yaml"
    config.write_text("split-tokens: 1000\ntemplate: python\n", encoding="utf-8")

    assert load_config_file(config) == {"split_tokens": 1000, "template": "python"}


@pytest.mark.unit
def test_load_config_file_rejects_non_mapping(tmp_path: Path) -> None:
    config = tmp_path / "fuse.yaml"
    config.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(InvalidConfigurationError, match="mapping"):
        load_config_file(config)


@pytest.mark.unit
def test_load_config_file_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(InvalidConfigurationError, match="Cannot read"):
        load_config_file(tmp_path / "absent.yaml")


@pytest.mark.unit
def test_explicit_values_override_config_file(tmp_path: Path) -> None:
    config = tmp_path / "fuse.yaml"
    config.write_text("split_tokens: 1000\nmax_tokens: 5000\n", encoding="utf-8")

    settings = build_settings({"split_tokens": 2000}, config)

    assert settings.split_tokens == 2000
    assert settings.max_tokens == 5000


@pytest.mark.unit
def test_build_settings_wraps_validation_errors() -> None:
    with pytest.raises(InvalidConfigurationError, match="Invalid options"):
        build_settings({"template": "cobol"})
