from __future__ import annotations

from pathlib import Path

import pytest

from fuse_context.gitignore import IgnoreRule, is_ignored, parse_gitignore_lines, resolve_gitignore


def _write(path: Path, text: str = "x\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.unit
def test_parse_skips_blank_comment_and_negated_lines(tmp_path: Path) -> None:
    rules = parse_gitignore_lines(["", "# comment", "  bin/  ", "!keep.log", "*.log"], tmp_path)

    assert [r.pattern for r in rules] == ["bin/", "*.log"]
    assert all(r.origin_directory == tmp_path for r in rules)


@pytest.mark.unit
def test_rule_only_matches_under_its_origin(tmp_path: Path) -> None:
    rule = IgnoreRule(pattern="*.log", origin_directory=tmp_path / "a")

    assert rule.matches(tmp_path / "a" / "deep" / "x.log")
    assert not rule.matches(tmp_path / "b" / "x.log")
    assert not rule.matches(tmp_path / "a" / "x.txt")


@pytest.mark.unit
def test_rooted_pattern_matches_only_at_origin(tmp_path: Path) -> None:
    rule = IgnoreRule(pattern="/build", origin_directory=tmp_path)

    assert rule.matches(tmp_path / "build" / "out.txt")
    assert not rule.matches(tmp_path / "src" / "build" / "out.txt")


@pytest.mark.unit
def test_directory_pattern_excludes_nested_files(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    _write(tmp_path / ".gitignore", "bin/\n")
    dll = _write(tmp_path / "src" / "bin" / "x.dll")
    source = _write(tmp_path / "src" / "main.cs")

    rules = resolve_gitignore(tmp_path / "src")

    assert is_ignored(dll.resolve(), rules)
    assert not is_ignored(source.resolve(), rules)


@pytest.mark.unit
def test_double_star_pattern(tmp_path: Path) -> None:
    rule = IgnoreRule(pattern="docs/**/draft.md", origin_directory=tmp_path)

    assert rule.matches(tmp_path / "docs" / "a" / "b" / "draft.md")
    assert not rule.matches(tmp_path / "other" / "draft.md")


@pytest.mark.unit
def test_resolution_stops_at_repository_root(tmp_path: Path) -> None:
    outer = tmp_path / "outer"
    repo = outer / "repo"
    (repo / ".git").mkdir(parents=True)
    _write(outer / ".gitignore", "*.cs\n")
    _write(repo / ".gitignore", "*.tmp\n")
    _write(repo / "src" / ".gitignore", "*.bak\n")

    rules = resolve_gitignore(repo / "src")

    assert [r.pattern for r in rules] == ["*.bak", "*.tmp"]
    assert rules[0].origin_directory == (repo / "src").resolve()
    assert rules[1].origin_directory == repo.resolve()


@pytest.mark.unit
def test_no_gitignore_yields_no_rules(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()

    assert resolve_gitignore(tmp_path) == []
