"""Content filter — decide which repository paths are worth fetching."""

from __future__ import annotations

IGNORED_DIRS: frozenset[str] = frozenset(
    {
        # version-control metadata
        ".git",
        ".hg",
        ".svn",
        # dependency caches
        "node_modules",
        "bower_components",
        "vendor",
        "venv",
        ".venv",
        "env",
        ".tox",
        ".nox",
        ".gradle",
        "Pods",
        # build output and tool caches
        "dist",
        "build",
        "out",
        "bin",
        "obj",
        "target",
        ".next",
        ".nuxt",
        "__pycache__",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        ".eggs",
        ".terraform",
        # coverage reports and test fixtures
        "coverage",
        ".coverage",
        "htmlcov",
        ".nyc_output",
        "fixtures",
        "__snapshots__",
    }
)

ALLOWED_EXTENSIONS: frozenset[str] = frozenset(
    {
        # source
        ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs",
        ".py", ".java", ".kt", ".scala",
        ".c", ".h", ".cpp", ".hpp", ".cc",
        ".cs", ".go", ".rs", ".rb", ".php", ".swift", ".dart",
        ".vue", ".svelte", ".sh", ".sql", ".lua",
        ".html", ".css", ".scss", ".less",
        # config
        ".json", ".yml", ".yaml", ".toml", ".ini", ".cfg",
        # docs
        ".md", ".rst", ".txt",
    }
)


def _segment_in_ignored_dirs(path: str) -> bool:
    """Return *True* if any directory segment of *path* is ignored."""
    parts = path.strip("/").split("/")[:-1]
    return any(
        part in IGNORED_DIRS or part.endswith(".egg-info")
        for part in parts
    )


def _extension(path: str) -> str:
    name = path.rsplit("/", maxsplit=1)[-1].lower()
    dot = name.rfind(".")
    return name[dot:] if dot > 0 else ""


def is_ignored_directory(path: str) -> bool:
    """Return *True* if the directory at *path* should not be walked into."""
    name = path.strip("/").rsplit("/", maxsplit=1)[-1]
    return name in IGNORED_DIRS or name.endswith(".egg-info") or _segment_in_ignored_dirs(path)


def is_admissible(path: str) -> bool:
    """Return *True* if the file at *path* should have its content fetched."""
    if _segment_in_ignored_dirs(path):
        return False
    return _extension(path) in ALLOWED_EXTENSIONS
