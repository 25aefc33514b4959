from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from fuse_context import minifiers
from fuse_context.minifiers import (
    ContentTransformer,
    minify_csharp,
    minify_css,
    minify_html,
    minify_json,
    minify_markdown,
    minify_xml,
    minify_yaml,
    register_minifier,
    transform_content,
)
from fuse_context.settings import Settings

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.mark.unit
def test_trim_and_condense() -> None:
    settings = Settings()

    assert transform_content(Path("a.txt"), "  a  \n\n   b\n", settings) == "a\nb\n"


@pytest.mark.unit
def test_unknown_extension_passes_through_untouched() -> None:
    settings = Settings(trim=False, condense=False)
    raw = "  a  \n\n   b\n"

    assert transform_content(Path("a.unknown"), raw, settings) == raw


@pytest.mark.unit
def test_json_is_reserialized_compactly() -> None:
    raw = '{\n  "a": 1,\n  "b": [1, 2],\n  "c": "é"\n}\n'

    assert transform_content(Path("x.JSON"), raw, Settings()) == '{"a":1,"b":[1,2],"c":"é"}'


@pytest.mark.unit
def test_invalid_json_is_squeezed_textually() -> None:
    raw = '{\n// comment\n"a": 1,\n}'

    assert minify_json(raw, Settings()) == '{"a":1}'


@pytest.mark.unit
def test_csharp_debug_code_is_always_removed() -> None:
    raw = 'int a = 1;\nDebug.WriteLine("x");\n#if DEBUG\nTrace();\n#endif\nint b = 2;\n'

    result = minify_csharp(raw, Settings())

    assert "Debug" not in result
    assert "Trace" not in result
    assert "int a = 1;" in result
    assert "int b = 2;" in result


@pytest.mark.unit
def test_csharp_usings_only_removes_directives() -> None:
    raw = "using System;\nusing Alias = Foo.Bar;\nusing (var s = Open()) { }\nclass A { }\n"

    result = minify_csharp(raw, Settings(remove_usings=True))

    assert "using System;" not in result
    assert "using Alias" not in result
    assert "using (var s = Open())" in result
    assert "class A { }" in result


@pytest.mark.unit
def test_csharp_namespace_removal_drops_only_the_closing_brace() -> None:
    raw = "namespace Foo.Bar\n{\nclass A\n{\n}\n}\n"

    result = minify_csharp(raw, Settings(remove_namespaces=True))

    assert "namespace" not in result
    assert result.count("}") == 1
    assert "class A\n{\n}" in result


@pytest.mark.unit
def test_csharp_comments_and_regions() -> None:
    raw = "#region Props\n/* block */\nint a; // trailing\nvar u = \"http://x\";\n#endregion\n"

    result = minify_csharp(raw, Settings(remove_comments=True, remove_regions=True))

    assert "region" not in result
    assert "block" not in result
    assert "trailing" not in result
    assert 'var u = "http://x";' in result


@pytest.mark.unit
def test_csharp_aggressive_preserves_string_literals() -> None:
    raw = 'var s = "a  b";\n  if (x) { y(); }\n'

    assert minify_csharp(raw, Settings(aggressive=True)) == 'var s="a  b";if(x){y();}'


@pytest.mark.unit
def test_apply_all_enables_every_csharp_reduction() -> None:
    settings = Settings(apply_all=True)

    assert settings.remove_csharp_comments
    assert settings.remove_csharp_regions
    assert settings.remove_csharp_namespaces
    assert settings.remove_csharp_usings
    assert settings.aggressive_csharp


@pytest.mark.unit
def test_html_minification_unquotes_safe_attributes() -> None:
    raw = '<!-- c -->\n<div class="a" title="x y">\n  <p>hi</p>\n</div>'

    assert minify_html(raw, Settings()) == '<div class=a title="x y"><p>hi</p></div>'


@pytest.mark.unit
def test_html_minification_can_be_disabled() -> None:
    raw = "<div>\n<p>hi</p>\n</div>"

    assert transform_content(Path("a.html"), raw, Settings(minify_html=False)) == raw


@pytest.mark.unit
def test_xml_collapses_onto_one_line() -> None:
    raw = '<?xml version="1.0"?>\n<root>\n  <!-- note -->\n  <a>1</a>\n</root>\n'

    result = minify_xml(raw, Settings())

    assert result.endswith("<root><a>1</a></root>")
    assert "note" not in result


@pytest.mark.unit
def test_css_drops_comments_and_layout() -> None:
    raw = "/* c */\na {\n  color : red ;\n}\n"

    assert minify_css(raw, Settings()) == "a{color:red;}"


@pytest.mark.unit
def test_markdown_setext_heading_and_rule() -> None:
    raw = "Title\n=====\n\ntext\n\n---\n"

    assert minify_markdown(raw, Settings()) == "# Title\n\ntext"


@pytest.mark.unit
def test_yaml_drops_comment_lines() -> None:
    raw = "# comment\nkey:\n  nested: 1  \n"

    assert minify_yaml(raw, Settings()) == "key:\n  nested: 1"


@pytest.mark.unit
def test_failing_minifier_falls_back_to_trimmed_text(mocker: MockerFixture) -> None:
    mocker.patch.dict(minifiers.MINIFIERS)

    @register_minifier(".boom")
    def explode(_content: str, _settings: Settings) -> str:
        msg = "bad input"
        raise ValueError(msg)

    assert transform_content(Path("a.boom"), "  x  \n", Settings()) == "x\n"


@pytest.mark.unit
def test_content_transformer_binds_settings() -> None:
    transformer = ContentTransformer(Settings(trim=False, condense=False))

    assert transformer(Path("a.txt"), "  x\n\n") == "  x\n\n"
