from __future__ import annotations

import pytest

from fuse_context.config import (
    ALL_FILES,
    ProjectTemplate,
    get_excluded_patterns,
    get_template,
    is_test_directory,
    is_unit_test_directory,
    resolve_collection_config,
)
from fuse_context.settings import Settings


@pytest.mark.unit
@pytest.mark.parametrize(
    ("name", "unit", "any_test"),
    [
        ("Shop.UnitTests", True, True),
        ("Shop.Tests", True, True),
        ("shop.tests", True, True),
        ("Shop.IntegrationTests", False, True),
        ("Shop.E2ETests", False, True),
        ("Shop.Benchmarks", False, True),
        ("Shop.Core", False, False),
    ],
)
def test_test_directory_classification(name: str, unit: bool, any_test: bool) -> None:  # noqa: FBT001
    assert is_unit_test_directory(name) is unit
    assert is_test_directory(name) is any_test


@pytest.mark.unit
def test_every_template_has_defaults() -> None:
    for template in ProjectTemplate:
        extensions, directories = get_template(template)
        assert extensions
        assert directories


@pytest.mark.unit
def test_no_template_accepts_every_file() -> None:
    config = resolve_collection_config(Settings(exclude_directories="dist"))

    assert config.extensions == frozenset({ALL_FILES})
    assert config.accepts_all_extensions
    assert config.exclude_directories == frozenset({"dist"})
    assert config.exclude_patterns == ()


@pytest.mark.unit
def test_template_merges_user_lists() -> None:
    settings = Settings(
        template="dotnet",
        include_extensions="fs",
        exclude_extensions=".md",
        exclude_directories="Generated",
        exclude_patterns="*.snap",
    )

    config = resolve_collection_config(settings)

    assert ".cs" in config.extensions
    assert ".fs" in config.extensions
    assert ".md" not in config.extensions
    assert {"bin", "obj", "Generated"} <= config.exclude_directories
    assert "generated" in config.lowered_exclude_directories
    assert config.exclude_patterns[-1] == "*.snap"
    assert "*.g.cs" in config.exclude_patterns


@pytest.mark.unit
def test_only_extensions_replace_template_defaults() -> None:
    settings = Settings(template="dotnet", only_extensions="cs", exclude_directories="bin")

    config = resolve_collection_config(settings)

    assert config.extensions == frozenset({".cs"})
    assert config.exclude_directories == frozenset({"bin"})
    assert config.exclude_patterns == ()


@pytest.mark.unit
def test_size_and_test_flags_are_carried_over() -> None:
    settings = Settings(max_file_size_kb=2, exclude_unit_test_projects=True, recursive=False)

    config = resolve_collection_config(settings)

    assert config.max_file_size_bytes == 2048
    assert config.exclude_unit_test_projects_only
    assert not config.exclude_all_test_projects
    assert not config.recursive


@pytest.mark.unit
def test_infrastructure_template_excludes_state_files() -> None:
    assert "*.tfstate" in get_excluded_patterns(ProjectTemplate.INFRASTRUCTURE)
    assert get_excluded_patterns(ProjectTemplate.PYTHON) == ()
