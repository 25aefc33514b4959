from __future__ import annotations

from pathlib import Path

import pytest

from fuse_context import cli


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def solution(tmp_path: Path) -> Path:
    root = tmp_path / "Shop"
    _write(root / "Shop.sln", "Microsoft Visual Studio Solution File\n")
    _write(root / "src" / "Shop.Api" / "Program.cs", "using System;\n\nConsole.WriteLine(\"hi\");\n")
    _write(root / "src" / "Shop.Api" / "Shop.Api.csproj", "<Project>\n  <PropertyGroup />\n</Project>\n")
    _write(root / "src" / "Shop.Api" / "obj" / "Gen.cs", "class Gen {}\n")
    _write(root / "src" / "Shop.Api" / "Form.Designer.cs", "partial class Form {}\n")
    _write(root / "Shop.UnitTests" / "CartTests.cs", "class CartTests {}\n")
    _write(root / "Shop.IntegrationTests" / "ApiTests.cs", "class ApiTests {}\n")
    return root


@pytest.mark.end2end
def test_end_to_end_dotnet_export(solution: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out = tmp_path / "out"

    exit_code = cli.main(
        [
            "dotnet",
            "-d",
            str(solution / "src"),
            "-o",
            str(out),
            "-n",
            "shop.txt",
            "--split-tokens",
            "0",
            "--encoding",
            "approx",
            "--remove-usings",
        ],
    )

    assert exit_code == 0
    text = (out / "shop.txt").read_text(encoding="utf-8")
    assert text.startswith("# FUSE CONTEXT\n# Base Path: src\n")
    assert "<|Shop.Api/Program.cs|>\n" in text
    assert "using System;" not in text
    assert "<|Shop.Api/Shop.Api.csproj|>\n<Project><PropertyGroup /></Project>\n<|/|>\n" in text
    assert "Gen.cs" not in text
    assert "Designer" not in text
    assert "Wrote" in capsys.readouterr().out


@pytest.mark.end2end
def test_end_to_end_unit_test_projects_only(solution: Path, tmp_path: Path) -> None:
    exit_code = cli.main(
        [
            "dotnet",
            "-d",
            str(solution),
            "-o",
            str(tmp_path),
            "-n",
            "tests",
            "--split-tokens",
            "0",
            "--encoding",
            "approx",
            "--exclude-unit-test-projects",
        ],
    )

    assert exit_code == 0
    text = (tmp_path / "tests.txt").read_text(encoding="utf-8")
    assert "ApiTests" in text
    assert "CartTests" not in text


@pytest.mark.end2end
def test_end_to_end_split_and_cap(solution: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(
        [
            "-d",
            str(solution),
            "-o",
            str(tmp_path),
            "-n",
            "ctx",
            "--only-extensions",
            "cs",
            "--split-tokens",
            "40",
            "--max-tokens",
            "100",
            "--encoding",
            "approx",
        ],
    )

    assert exit_code == 0
    parts = sorted(tmp_path.glob("ctx_part*.txt"))
    assert [p.name for p in parts] == ["ctx_part1.txt", "ctx_part2.txt", "ctx_part3.txt"]
    assert all("# Part: " in p.read_text(encoding="utf-8") for p in parts)
    assert "Stopped early: token cap of 100 reached" in capsys.readouterr().out


@pytest.mark.end2end
def test_end_to_end_runs_are_reproducible(solution: Path, tmp_path: Path) -> None:
    args = ["-d", str(solution), "-o", str(tmp_path), "-n", "ctx", "--encoding", "approx", "--include-metadata"]

    assert cli.main(args) == 0
    first = (tmp_path / "ctx_part1.txt").read_bytes()
    assert cli.main(args) == 0

    assert (tmp_path / "ctx_part1.txt").read_bytes() == first


@pytest.mark.end2end
def test_end_to_end_refuses_existing_output(solution: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (tmp_path / "ctx.txt").write_text("keep\n", encoding="utf-8")

    exit_code = cli.main(
        [
            "-d",
            str(solution),
            "-o",
            str(tmp_path),
            "-n",
            "ctx",
            "--split-tokens",
            "0",
            "--no-overwrite",
            "--encoding",
            "approx",
        ],
    )

    assert exit_code == 1
    assert "already exists" in capsys.readouterr().err
    assert (tmp_path / "ctx.txt").read_text(encoding="utf-8") == "keep\n"


@pytest.mark.end2end
def test_end_to_end_keeps_parts_written_before_a_conflict(
    solution: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    (tmp_path / "ctx_part2.txt").write_text("keep\n", encoding="utf-8")

    exit_code = cli.main(
        [
            "-d",
            str(solution),
            "-o",
            str(tmp_path),
            "-n",
            "ctx",
            "--only-extensions",
            "cs",
            "--split-tokens",
            "40",
            "--no-overwrite",
            "--encoding",
            "approx",
        ],
    )

    captured = capsys.readouterr()
    assert exit_code == 1
    assert f"Wrote {tmp_path / 'ctx_part1.txt'}" in captured.out
    assert "Stopped early:" in captured.out
    assert "already exists" in captured.err
    assert (tmp_path / "ctx_part2.txt").read_text(encoding="utf-8") == "keep\n"
    assert not (tmp_path / "ctx_part3.txt").exists()
