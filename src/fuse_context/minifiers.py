"""Per-format content reduction applied before files are framed into the output.

Every minifier is a pure ``(content, settings) -> str`` function registered under
the file extensions it handles. The rewrites are regex based: they shrink token
usage and make no promise that the result still parses.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fuse_context.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from fuse_context.settings import Settings

    MinifierFn = Callable[[str, Settings], str]


@dataclass(frozen=True)
class _Registration:
    func: MinifierFn
    enabled: Callable[[Settings], bool]


MINIFIERS: dict[str, _Registration] = {}


def _always(_settings: Settings) -> bool:
    return True


def register_minifier(
    key: str | list[str],
    *,
    enabled: Callable[[Settings], bool] = _always,
) -> Callable[[MinifierFn], MinifierFn]:
    """Decorator to register a minifier for one or more file extensions.

    Args:
        key (str | list[str]): the lower-case extension(s) (e.g. ".css") handled by
            the decorated function.
        enabled (Callable[[Settings], bool]): predicate deciding, per run, whether the
            minifier applies. Disabled extensions pass through unchanged.

    Returns:
        Callable[[MinifierFn], MinifierFn]: a decorator returning the function unchanged.
    """

    def decorator(func: MinifierFn) -> MinifierFn:
        for k in [key] if isinstance(key, str) else key:
            MINIFIERS[k] = _Registration(func=func, enabled=enabled)
        return func

    return decorator


# ------------------------------ Shared rewrites ------------------------------

_LINE_EDGE_WS = re.compile(r"^[ \t]+|[ \t]+$", re.MULTILINE)
_BLANK_LINES = re.compile(r"^[ \t]*\r?\n", re.MULTILINE)
_HTML_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"(?<!:)//(?!/)[^\r\n]*")
_MULTI_SPACE = re.compile(r" {2,}")
_THREE_NEWLINES = re.compile(r"(\r?\n){3,}")
_TAG_GAP = re.compile(r">\s+<")
_EDGE_WS_MULTILINE = re.compile(r"^\s+|\s+$", re.MULTILINE)


def trim_lines(content: str) -> str:
    """Strip leading and trailing blanks from every line."""
    return _LINE_EDGE_WS.sub("", content)


def condense_lines(content: str) -> str:
    """Remove lines that contain only whitespace."""
    return _BLANK_LINES.sub("", content)


# ------------------------------ C# ------------------------------

_CS_DEBUG_CALL = re.compile(r"^[ \t]*Debug\.Write(Line)?\s*\(.*?\)\s*;[ \t]*$", re.MULTILINE)
_CS_DEBUG_BLOCK = re.compile(r"#if\s+DEBUG.*?#endif", re.DOTALL)
_CS_LINE_COMMENT = re.compile(r"(?<!:)//.*$", re.MULTILINE)
_CS_REGION = re.compile(r"^[ \t]*#(end)?region\b.*$", re.MULTILINE)
_CS_FILE_NAMESPACE = re.compile(r"^[ \t]*namespace\s+[\w.]+\s*;[ \t]*$", re.MULTILINE)
_CS_BLOCK_NAMESPACE = re.compile(r"namespace\s+[\w.]+\s*\{")
_CS_LAST_BRACE = re.compile(r"\}\s*\Z")
_CS_USING = re.compile(
    r"^[ \t]*(global\s+)?using\s+(static\s+)?[\w.]+(\s*=\s*[\w.<>, ]+)?\s*;[ \t]*$",
    re.MULTILINE,
)
_CS_WS_LINES = re.compile(r"^[ \t]+$", re.MULTILINE)
_CS_TRAILING_WS = re.compile(r"[ \t]+$", re.MULTILINE)
_CS_INNER_SPACES = re.compile(r"(?<=\S) {2,}")
_CS_STRING = re.compile(r'(@"(?:[^"]|"")*")|"(?:[^"\n\\]|\\.)*"')
_CS_PUNCT_WS = re.compile(r"\s*([{}(),;:=+\-*/%&|^!~?<>])\s*")
_CS_ANY_WS = re.compile(r"\s+")


def _remove_csharp_comments(content: str) -> str:
    content = _BLOCK_COMMENT.sub("", content)
    return _CS_LINE_COMMENT.sub("", content)


def _remove_csharp_namespaces(content: str) -> str:
    content = _CS_FILE_NAMESPACE.sub("", content)
    content, n = _CS_BLOCK_NAMESPACE.subn("", content)
    if n:
        content = _CS_LAST_BRACE.sub("", content)
    return content


def _aggressive_csharp(content: str) -> str:
    literals: list[str] = []

    def stash(m: re.Match[str]) -> str:
        literals.append(m.group(0))
        return f"__STRING_{len(literals) - 1}__"

    content = _CS_STRING.sub(stash, content)
    content = _remove_csharp_comments(content)
    content = _CS_ANY_WS.sub(" ", content)
    content = _CS_PUNCT_WS.sub(r"\1", content)
    for i, lit in enumerate(literals):
        content = content.replace(f"__STRING_{i}__", lit)
    return content.strip()


@register_minifier(".cs")
def minify_csharp(content: str, settings: Settings) -> str:
    """Reduce C# source: debug code always, the rest according to the run's toggles."""
    content = _CS_DEBUG_CALL.sub("", content)
    content = _CS_DEBUG_BLOCK.sub("", content)
    if settings.remove_csharp_comments:
        content = _remove_csharp_comments(content)
    if settings.remove_csharp_regions:
        content = _CS_REGION.sub("", content)
    if settings.remove_csharp_namespaces:
        content = _remove_csharp_namespaces(content)
    if settings.remove_csharp_usings:
        content = _CS_USING.sub("", content)
    if settings.aggressive_csharp:
        return _aggressive_csharp(content)
    content = _THREE_NEWLINES.sub("\n\n", content)
    content = _CS_WS_LINES.sub("", content)
    content = _CS_TRAILING_WS.sub("", content)
    return _CS_INNER_SPACES.sub(" ", content)


# ------------------------------ Markup ------------------------------

_RAZOR_COMMENT = re.compile(r"@\*.*?\*@", re.DOTALL)
_RAZOR_OPEN_PAREN = re.compile(r"@\(\s+")
_RAZOR_CLOSE_PAREN = re.compile(r"\s+\)")
_HTML_QUOTED_ATTR = re.compile(r'(\S+)="([^"\s]+)"')
_HTML_UNSAFE_VALUE = re.compile(r"[<>&'\"=`]")


@register_minifier([".razor", ".cshtml"], enabled=lambda s: s.minify_html)
def minify_razor(content: str, _settings: Settings) -> str:
    """Strip HTML/C#/Razor comments and collapse markup whitespace."""
    content = _HTML_COMMENT.sub("", content)
    content = _BLOCK_COMMENT.sub("", content)
    content = _LINE_COMMENT.sub("", content)
    content = _RAZOR_COMMENT.sub("", content)
    content = _TAG_GAP.sub("><", content)
    content = _RAZOR_OPEN_PAREN.sub("@(", content)
    content = _RAZOR_CLOSE_PAREN.sub(")", content)
    content = _MULTI_SPACE.sub(" ", content)
    content = _EDGE_WS_MULTILINE.sub("", content)
    return _THREE_NEWLINES.sub("\n\n", content)


def _unquote_attribute(m: re.Match[str]) -> str:
    if _HTML_UNSAFE_VALUE.search(m.group(2)):
        return m.group(0)
    return f"{m.group(1)}={m.group(2)}"


@register_minifier([".html", ".htm"], enabled=lambda s: s.minify_html)
def minify_html(content: str, _settings: Settings) -> str:
    """Strip comments, whitespace between tags, and redundant attribute quotes."""
    content = _HTML_COMMENT.sub("", content)
    content = _TAG_GAP.sub("><", content)
    content = _HTML_QUOTED_ATTR.sub(_unquote_attribute, content)
    content = _MULTI_SPACE.sub(" ", content)
    return _EDGE_WS_MULTILINE.sub("", content)


_XML_DECLARATION_END = re.compile(r"\?>\s*")
_XML_NEWLINES = re.compile(r"[\r\n]+(?!<\?)")


@register_minifier([".xml", ".targets", ".props", ".csproj"], enabled=lambda s: s.minify_xml)
def minify_xml(content: str, _settings: Settings) -> str:
    """Collapse an XML document onto one line after its declaration."""
    content = _HTML_COMMENT.sub("", content)
    content = _TAG_GAP.sub("><", content)
    content = _EDGE_WS_MULTILINE.sub("", content)
    content = _XML_DECLARATION_END.sub("?>\n", content)
    content = _XML_NEWLINES.sub("", content)
    content = _MULTI_SPACE.sub(" ", content)
    return content.strip()


# ------------------------------ Stylesheets & scripts ------------------------------

_NEWLINES = re.compile(r"[\r\n]+")
_CSS_OPEN = re.compile(r"\s*\{\s*")
_CSS_CLOSE = re.compile(r"\s*\}\s*")
_CSS_COLON = re.compile(r"\s*:\s*")
_CSS_SEMI = re.compile(r"\s*;\s*")
_CSS_COMMA = re.compile(r"\s*,\s*")


def _compact_css(content: str) -> str:
    content = _NEWLINES.sub("", content)
    content = _CSS_OPEN.sub("{", content)
    content = _CSS_CLOSE.sub("}", content)
    content = _CSS_COLON.sub(":", content)
    content = _CSS_SEMI.sub(";", content)
    content = _CSS_COMMA.sub(",", content)
    content = _MULTI_SPACE.sub(" ", content)
    return content.strip()


@register_minifier(".css")
def minify_css(content: str, _settings: Settings) -> str:
    """Strip comments and all layout whitespace from CSS."""
    return _compact_css(_BLOCK_COMMENT.sub("", content))


@register_minifier(".scss")
def minify_scss(content: str, _settings: Settings) -> str:
    """Like CSS, plus ``//`` line comments."""
    content = _LINE_COMMENT.sub("", content)
    return _compact_css(_BLOCK_COMMENT.sub("", content))


_JS_NEWLINES = re.compile(r"(\r?\n){2,}")
_JS_PUNCT_WS = re.compile(r"\s*([{}\[\]();,:])\s*")


@register_minifier(".js")
def minify_javascript(content: str, _settings: Settings) -> str:
    """Strip comments and whitespace around JavaScript punctuation."""
    content = _LINE_COMMENT.sub("", content)
    content = _BLOCK_COMMENT.sub("", content)
    content = _JS_NEWLINES.sub("\n", content)
    content = _EDGE_WS_MULTILINE.sub("", content)
    content = _MULTI_SPACE.sub(" ", content)
    content = _JS_PUNCT_WS.sub(r"\1", content)
    return content.strip()


# ------------------------------ Data & docs ------------------------------

_JSON_COLON = re.compile(r":\s+")
_JSON_COMMA = re.compile(r",\s+")
_JSON_OPEN = re.compile(r"([\[{])\s+")
_JSON_CLOSE = re.compile(r"\s+([\]}])")
_JSON_TRAILING_COMMA = re.compile(r",\s*([\]}])")


@register_minifier(".json")
def minify_json(content: str, _settings: Settings) -> str:
    """Re-serialize JSON compactly; comment-bearing or invalid JSON is squeezed textually."""
    try:
        return json.dumps(json.loads(content), ensure_ascii=False, separators=(",", ":"))
    except ValueError:
        pass
    content = _BLOCK_COMMENT.sub("", content)
    content = _LINE_COMMENT.sub("", content)
    content = _NEWLINES.sub("", content)
    content = _JSON_COLON.sub(":", content)
    content = _JSON_COMMA.sub(",", content)
    content = _JSON_OPEN.sub(r"\1", content)
    content = _JSON_CLOSE.sub(r"\1", content)
    content = _JSON_TRAILING_COMMA.sub(r"\1", content)
    return content.strip()


_MD_SETEXT = re.compile(r"^(?P<text>.+)\r?\n(?P<underline>[=\-]{3,})[ \t]*$", re.MULTILINE)
_MD_RULE = re.compile(r"^[ \t]*[-*_]{3,}[ \t]*(\r?\n)?", re.MULTILINE)
_MD_TABLE_PIPE = re.compile(r"[ \t]*\|[ \t]*")
_MD_LINK_TITLE = re.compile(r'\[([^\]]+)\]\(([^\s)]+)\s+"[^"]*"\)')
_MD_TRAILING_WS = re.compile(r"(?<!  )[ \t]+$", re.MULTILINE)
_LEADING_NEWLINES = re.compile(r"^[\r\n]+")
_TRAILING_NEWLINES = re.compile(r"[\r\n]+$")


def _atx_heading(m: re.Match[str]) -> str:
    level = "#" if m.group("underline").startswith("=") else "##"
    return f"{level} {m.group('text').strip()}"


@register_minifier(".md")
def minify_markdown(content: str, _settings: Settings) -> str:
    """Convert setext headings, drop rules, comments and link titles, tighten tables."""
    content = _HTML_COMMENT.sub("", content)
    content = _MD_SETEXT.sub(_atx_heading, content)
    content = _MD_RULE.sub("", content)
    content = _MD_TABLE_PIPE.sub("|", content)
    content = _MD_LINK_TITLE.sub(r"[\1](\2)", content)
    content = _THREE_NEWLINES.sub("\n\n", content)
    content = _MD_TRAILING_WS.sub("", content)
    content = _LEADING_NEWLINES.sub("", content)
    return _TRAILING_NEWLINES.sub("", content)


_YAML_COMMENT_LINE = re.compile(r"^[ \t]*#.*$", re.MULTILINE)


@register_minifier([".yml", ".yaml"])
def minify_yaml(content: str, _settings: Settings) -> str:
    """Drop comment lines and surplus blank lines; indentation is significant and kept."""
    content = _YAML_COMMENT_LINE.sub("", content)
    content = _CS_TRAILING_WS.sub("", content)
    content = _THREE_NEWLINES.sub("\n\n", content)
    content = _LEADING_NEWLINES.sub("", content)
    return _TRAILING_NEWLINES.sub("", content)


# ------------------------------ Dispatch ------------------------------


def transform_content(path: Path, raw: str, settings: Settings) -> str:
    """Apply trimming, condensing, and the extension-specific minifier.

    Never raises on malformed content: a minifier failure falls back to the text as
    it was before minification.

    Args:
        path (Path): the file path, used for extension dispatch
        raw (str): the decoded file content
        settings (Settings): run options selecting the rewrites

    Returns:
        str: the transformed content
    """
    content = raw
    if settings.trim:
        content = trim_lines(content)
    if settings.condense:
        content = condense_lines(content)

    reg = MINIFIERS.get(path.suffix.lower())
    if reg is None or not reg.enabled(settings):
        return content
    try:
        return reg.func(content, settings)
    except Exception as e:  # noqa: BLE001
        logger.debug("minifier_failed", path=str(path), minifier=reg.func.__name__, error=str(e))
        return content


class ContentTransformer:
    """Callable binding `transform_content` to one run's settings."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def __call__(self, path: Path, raw: str) -> str:
        return transform_content(path, raw, self.settings)
