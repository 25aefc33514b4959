from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from pathlib import Path  # noqa: TC003
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field

if TYPE_CHECKING:
    from fuse_context.settings import Settings

ALL_FILES = "*.*"
WILDCARDS = frozenset({ALL_FILES, "*"})


class ProjectTemplate(StrEnum):
    """Project families with predefined extension and exclusion defaults."""

    GENERIC = "generic"
    DOTNET = "dotnet"
    JAVA = "java"
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    RUBY = "ruby"
    GO = "go"
    RUST = "rust"
    PHP = "php"
    CPP_CSHARP = "cpp-csharp"
    SWIFT = "swift"
    KOTLIN = "kotlin"
    SCALA = "scala"
    DART = "dart"
    LUA = "lua"
    PERL = "perl"
    R = "r"
    VBNET = "vbnet"
    FSHARP = "fsharp"
    CLOJURE = "clojure"
    HASKELL = "haskell"
    ERLANG = "erlang"
    ELIXIR = "elixir"
    INFRASTRUCTURE = "infrastructure"
    AZURE_DEVOPS_WIKI = "azure-devops-wiki"


# (extensions, excluded directories)
TEMPLATE_DEFAULTS: dict[ProjectTemplate, tuple[tuple[str, ...], tuple[str, ...]]] = {
    ProjectTemplate.GENERIC: (
        (".txt", ".md", ".json", ".xml", ".yaml", ".yml"),
        (".git", ".svn", ".hg", "node_modules", ".vscode", ".idea"),
    ),
    ProjectTemplate.DOTNET: (
        (
            ".cs", ".xaml", ".cshtml", ".csproj", ".config", ".json", ".xml",
            ".razor", ".md", ".txt", ".props", ".targets", ".yml", ".yaml", ".scriban",
            ".bat", ".sh", ".ps1", ".cmd", ".nuspec", ".scss", ".css", ".html", ".htm",
            ".sql", ".feature", ".editorconfig",
        ),
        ("bin", "obj", ".vs", ".git", ".idea", "node_modules", "TestResults", "packages", "artifacts"),
    ),
    ProjectTemplate.JAVA: (
        (".java", ".gradle", ".xml", ".properties", ".jar", ".jsp", ".jspx", ".class"),
        ("build", "target", ".gradle", ".mvn", "node_modules", ".git"),
    ),
    ProjectTemplate.PYTHON: (
        (".py", ".pyc", ".pyd", ".pyo", ".pyw", ".pyx", ".pxd", ".pxi", ".ipynb", ".req", ".txt"),
        ("__pycache__", ".venv", "venv", "env", ".tox", "dist", "build", ".git", ".pytest_cache"),
    ),
    ProjectTemplate.JAVASCRIPT: (
        (".js", ".jsx", ".json", ".ts", ".tsx", ".html", ".css", ".scss", ".less", ".mjs"),
        ("node_modules", "dist", "build", "coverage", ".next", ".nuxt", ".git"),
    ),
    ProjectTemplate.TYPESCRIPT: (
        (".ts", ".tsx", ".js", ".jsx", ".json", ".html", ".css", ".scss", ".less"),
        ("node_modules", "dist", "build", "coverage", ".next", ".nuxt", ".git"),
    ),
    ProjectTemplate.RUBY: (
        (".rb", ".rake", ".gemspec", "Gemfile", "Rakefile", ".erb", ".haml", ".slim"),
        ("vendor", ".bundle", "coverage", "tmp", "log", ".git"),
    ),
    ProjectTemplate.GO: ((".go", ".mod", ".sum"), ("vendor", "bin", ".git")),
    ProjectTemplate.RUST: ((".rs", ".toml", ".lock"), ("target", ".cargo", ".git")),
    ProjectTemplate.PHP: (
        (".php", ".phtml", ".php7", ".phps", ".php-s", ".pht", ".phar"),
        ("vendor", "node_modules", ".git"),
    ),
    ProjectTemplate.CPP_CSHARP: (
        (".cpp", ".hpp", ".h", ".c", ".cc", ".cs", ".csproj", ".sln"),
        ("bin", "obj", "Debug", "Release", "x64", "x86", ".vs", ".git"),
    ),
    ProjectTemplate.SWIFT: (
        (".swift", ".xib", ".storyboard", ".xcodeproj", ".pbxproj", ".plist"),
        (".build", "Pods", ".git"),
    ),
    ProjectTemplate.KOTLIN: (
        (".kt", ".kts", ".java", ".xml", ".gradle"),
        ("build", ".gradle", ".idea", ".git"),
    ),
    ProjectTemplate.SCALA: (
        (".scala", ".sbt", ".sc"),
        ("target", "project/target", ".bloop", ".metals", ".git"),
    ),
    ProjectTemplate.DART: ((".dart", ".yaml", ".lock"), ("build", ".dart_tool", ".pub-cache", ".git")),
    ProjectTemplate.LUA: ((".lua", ".rockspec"), (".git",)),
    ProjectTemplate.PERL: ((".pl", ".pm", ".t"), ("blib", "_build", ".git")),
    ProjectTemplate.R: (
        (".R", ".Rmd", ".Rproj", ".RData", ".rds"),
        (".Rproj.user", ".Rhistory", ".RData", ".Ruserdata", ".git"),
    ),
    ProjectTemplate.VBNET: (
        (".vb", ".vbproj", ".config", ".settings", ".resx", ".sln"),
        ("bin", "obj", ".vs", "packages", "node_modules", ".git"),
    ),
    ProjectTemplate.FSHARP: (
        (".fs", ".fsi", ".fsx", ".fsproj", ".config", ".sln"),
        ("bin", "obj", ".vs", "packages", "node_modules", ".git"),
    ),
    ProjectTemplate.CLOJURE: ((".clj", ".cljs", ".cljc", ".edn"), ("target", ".cpcache", ".git")),
    ProjectTemplate.HASKELL: (
        (".hs", ".lhs", ".cabal", ".hs-boot"),
        ("dist", "dist-newstyle", ".stack-work", ".git"),
    ),
    ProjectTemplate.ERLANG: ((".erl", ".hrl", ".app.src", "rebar.config"), ("_build", ".rebar3", ".git")),
    ProjectTemplate.ELIXIR: ((".ex", ".exs", ".eex", ".leex", "mix.exs"), ("_build", "deps", ".git")),
    ProjectTemplate.INFRASTRUCTURE: (
        (
            ".tf", ".tfvars", ".yaml", ".yml", ".json", ".md", ".sh", ".ps1",
            ".hcl", ".tpl", ".env", ".properties", ".conf", ".config",
        ),
        (
            ".terraform", "node_modules", ".git", ".vs", ".idea", "bin", "obj", "dist",
            "build", ".pytest_cache", "__pycache__", "tmp", "temp", "logs",
        ),
    ),
    ProjectTemplate.AZURE_DEVOPS_WIKI: ((".md",), (".git", ".attachments")),
}

TEMPLATE_EXCLUDED_PATTERNS: dict[ProjectTemplate, tuple[str, ...]] = {
    ProjectTemplate.DOTNET: (
        # generated code
        "*.feature.cs",
        "*Steps.g.cs",
        "*.AssemblyHooks.cs",
        "*.g.cs",
        "*.g.i.cs",
        "*.Designer.cs",
        "*.designer.cs",
        "*_i.c",
        "*.generated.cs",
        "TemporaryGeneratedFile_*.cs",
        "*.Cache.cs",
        "*.cache",
        "*.baml",
        "ServiceReference.cs",
        "Reference.cs",
        "AssemblyInfo.cs",
        "*.xsd.cs",
        # high-noise files
        "*.resx",
        "*.resources",
        "launchSettings.json",
        "packages.lock.json",
        "bundleconfig.json",
        # web artifacts
        "*.min.js",
        "*.min.css",
        "*.map",
        "package-lock.json",
        "yarn.lock",
    ),
    ProjectTemplate.INFRASTRUCTURE: (
        "*.tfstate",
        "*.tfstate.backup",
        "*.tfplan",
        "*.tfvars.json",
        "override.tf",
        "override.tf.json",
        "*_override.tf",
        "*_override.tf.json",
        ".terraformrc",
        "terraform.rc",
        "crash.log",
        "crash.*.log",
        ".terraform.lock.hcl",
    ),
}

# Directory-name suffixes marking any kind of test project.
TEST_PROJECT_SUFFIXES: tuple[str, ...] = (
    "UnitTests", "Tests", "IntegrationTests", "Specs", "Test", "Testing",
    "FunctionalTests", "AcceptanceTests", "EndToEndTests", "E2ETests",
    "TestProject", "TestSuite", "TestLib", "TestData", "TestFramework",
    "TestUtils", "TestUtilities", "TestHelper", "TestHelpers", "TestCommon",
    "TestShared", "TestSupport", "Benchmark", "Benchmarks", "Performance",
    "PerformanceTests", "LoadTests", "StressTests",
)

# Narrower subset: unit-test projects only. Integration, e2e and benchmark
# directories are left alone.
UNIT_TEST_PROJECT_SUFFIXES: tuple[str, ...] = (
    "UnitTests", "UnitTest", "Tests", "Test", "Testing",
    "TestProject", "TestSuite", "TestLib", "TestData", "TestFramework",
    "TestUtils", "TestUtilities", "TestHelper", "TestHelpers", "TestCommon",
    "TestShared", "TestSupport",
)

_NOT_UNIT_TEST_SUFFIXES: tuple[str, ...] = (
    "IntegrationTests", "IntegrationTest", "FunctionalTests", "AcceptanceTests",
    "EndToEndTests", "E2ETests", "PerformanceTests", "LoadTests", "StressTests",
)


def is_unit_test_directory(name: str) -> bool:
    """Check whether a directory name designates a unit-test project.

    ``Tests`` is a unit-test suffix, but so is the tail of ``IntegrationTests``;
    names ending with one of the broader suites are therefore rejected first.

    Args:
        name (str): the directory name (a single path segment).

    Returns:
        bool: True if the name ends with a unit-test suffix and not with an
            integration, end-to-end or performance suffix.
    """
    low = name.lower()
    if any(low.endswith(s.lower()) for s in _NOT_UNIT_TEST_SUFFIXES):
        return False
    return any(low.endswith(s.lower()) for s in UNIT_TEST_PROJECT_SUFFIXES)


def is_test_directory(name: str) -> bool:
    """Check whether a directory name designates any test project."""
    low = name.lower()
    return any(low.endswith(s.lower()) for s in TEST_PROJECT_SUFFIXES)


def get_template(template: ProjectTemplate | None) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Return the (extensions, excluded directories) pair of a template, generic by default."""
    if template is None:
        return TEMPLATE_DEFAULTS[ProjectTemplate.GENERIC]
    return TEMPLATE_DEFAULTS.get(template, TEMPLATE_DEFAULTS[ProjectTemplate.GENERIC])


def get_excluded_patterns(template: ProjectTemplate | None) -> tuple[str, ...]:
    """Return the file-name glob patterns a template excludes."""
    if template is None:
        return ()
    return TEMPLATE_EXCLUDED_PATTERNS.get(template, ())


class CollectionConfig(BaseModel):
    """Resolved, read-only filter configuration for one collection run.

    Attributes:
        extensions: Accepted file-name endings (case-insensitive); ``*.*`` accepts all.
        exclude_directories: Directory names excluded wherever they appear in a path.
        exclude_patterns: File-name glob patterns excluded from the run.
        max_file_size_bytes: Size ceiling in bytes, 0 means unlimited.
        ignore_binary: Run the binary detector and drop binary files.
        exclude_all_test_projects: Drop files under any test-project directory.
        exclude_unit_test_projects_only: Drop files under unit-test directories only.
        recursive: Descend into subdirectories.
        respect_gitignore: Resolve and apply ``.gitignore`` rules.
    """

    model_config = ConfigDict(frozen=True)

    extensions: frozenset[str] = Field(default=frozenset({ALL_FILES}))
    exclude_directories: frozenset[str] = Field(default_factory=frozenset)
    exclude_patterns: tuple[str, ...] = Field(default_factory=tuple)
    max_file_size_bytes: int = Field(default=0, ge=0)
    ignore_binary: bool = True
    exclude_all_test_projects: bool = False
    exclude_unit_test_projects_only: bool = False
    recursive: bool = True
    respect_gitignore: bool = True

    @computed_field
    @property
    def accepts_all_extensions(self) -> bool:
        """Whether the wildcard sentinel disables extension filtering."""
        return bool(self.extensions & WILDCARDS)

    @computed_field
    @property
    def lowered_exclude_directories(self) -> frozenset[str]:
        """Excluded directory names, lower-cased once for case-insensitive checks."""
        return frozenset(d.lower() for d in self.exclude_directories)


class CandidateFile(BaseModel):
    """A file that survived the filter chain, with its stat data cached.

    Attributes:
        full_path: Absolute path to the file on disk.
        relative_path: Path relative to the source directory, POSIX separators.
        size_bytes: File size in bytes.
        last_modified: POSIX mtime (float seconds since epoch).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    full_path: Path = Field(..., description="Absolute file path")
    relative_path: str = Field(..., description="File path relative to the source directory")
    size_bytes: int = Field(..., ge=0, description="File size in bytes")
    last_modified: float = Field(..., description="POSIX modification time (seconds)")

    @computed_field
    @property
    def extension(self) -> str:
        """Lower-cased file suffix, used to dispatch content transformation."""
        return self.full_path.suffix.lower()

    @computed_field
    @property
    def modified_at(self) -> datetime:
        """Local modification time."""
        return datetime.fromtimestamp(self.last_modified)  # noqa: DTZ006


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


def resolve_collection_config(settings: Settings) -> CollectionConfig:
    """Merge user options with template defaults into a `CollectionConfig`.

    Precedence, highest first:
    1) ``only_extensions`` replaces every extension default and drops template patterns.
    2) Without a template, ``include_extensions`` (or all files) is used.
    3) With a template, its extensions minus ``exclude_extensions`` plus
       ``include_extensions``; its excluded directories plus the user's; its patterns.

    User ``exclude_patterns`` are appended in every case.

    Args:
        settings (Settings): the run options.

    Returns:
        CollectionConfig: the resolved, immutable filter configuration.
    """
    user_dirs = list(settings.exclude_directories)
    template_patterns: list[str] = []

    if settings.only_extensions:
        extensions = list(settings.only_extensions)
        directories = user_dirs
    elif settings.template is None:
        extensions = list(settings.include_extensions) or [ALL_FILES]
        directories = user_dirs
    else:
        template_exts, template_dirs = get_template(settings.template)
        excluded = {e.lower() for e in settings.exclude_extensions}
        extensions = [e for e in template_exts if e.lower() not in excluded]
        extensions.extend(settings.include_extensions)
        directories = [*template_dirs, *user_dirs]
        template_patterns = list(get_excluded_patterns(settings.template))

    return CollectionConfig(
        extensions=frozenset(_dedupe(extensions)),
        exclude_directories=frozenset(_dedupe(directories)),
        exclude_patterns=tuple(_dedupe([*template_patterns, *settings.exclude_patterns])),
        max_file_size_bytes=settings.max_file_size_kb * 1024,
        ignore_binary=settings.ignore_binary,
        exclude_all_test_projects=settings.exclude_test_projects,
        exclude_unit_test_projects_only=settings.exclude_unit_test_projects,
        recursive=settings.recursive,
        respect_gitignore=settings.respect_gitignore,
    )
