"""Domain entities — pure data structures with no external dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NodeType(str, Enum):
    """Kind of node in a fetched repository tree."""

    FILE = "file"
    DIRECTORY = "directory"


class FetchOutcome(str, Enum):
    """What happened when a node was visited."""

    FETCHED = "fetched"
    TOO_LARGE = "too_large"
    SKIPPED = "skipped"  # rejected by the content filter
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RemoteEntry:
    """One item of a directory listing from the remote API."""

    name: str
    path: str
    type: str  # "file", "dir", "symlink", "submodule"
    size: int = 0
    sha: str = ""


@dataclass(frozen=True, slots=True)
class FileContent:
    """Decoded content of a single remote file."""

    path: str
    content: str
    encoding: str = "utf-8"


@dataclass(frozen=True, slots=True)
class RepoMetadata:
    """High-level metadata about a remote repository."""

    owner: str
    repo: str
    default_branch: str
    description: str | None = None
    language: str | None = None


@dataclass(frozen=True, slots=True)
class FileNode:
    """A file or directory of the fetched tree.

    ``content`` is only set for files: real text when ``outcome`` is
    ``FETCHED``, a marker string for ``TOO_LARGE`` and ``FAILED``.
    ``children`` is only set for directories.
    """

    name: str
    path: str
    type: NodeType
    size: int = 0
    outcome: FetchOutcome = FetchOutcome.SKIPPED
    content: str | None = None
    children: tuple[FileNode, ...] | None = None

    @property
    def is_directory(self) -> bool:
        return self.type is NodeType.DIRECTORY

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "path": self.path,
            "type": self.type.value,
            "size": self.size,
            "outcome": self.outcome.value,
        }
        if self.content is not None:
            data["content"] = self.content
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass(frozen=True, slots=True)
class SourceFile:
    """A (path, content) pair handed to the analysis stages."""

    path: str
    content: str


@dataclass(frozen=True, slots=True)
class RepositorySnapshot:
    """The fetched tree together with where it came from."""

    owner: str
    repo: str
    branch: str
    tree: tuple[FileNode, ...]
    total_files: int
    total_directories: int
    description: str | None = None
    language: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": {
                "owner": self.owner,
                "name": self.repo,
                "fullName": f"{self.owner}/{self.repo}",
                "branch": self.branch,
                "description": self.description,
                "language": self.language,
            },
            "fileStructure": [node.to_dict() for node in self.tree],
            "totalFiles": self.total_files,
            "totalDirectories": self.total_directories,
        }


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """A role-tagged message for the text-generation collaborator."""

    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass(frozen=True, slots=True)
class Abstraction:
    """A named concept of the repository and the files that implement it."""

    name: str
    description: str
    category: str
    file_indices: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "file_indices": list(self.file_indices),
        }


@dataclass(frozen=True, slots=True)
class Relationship:
    """A directed edge: abstraction ``source`` acts upon ``target``."""

    source: int
    target: int
    label: str

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.source, "to": self.target, "label": self.label}


@dataclass(frozen=True, slots=True)
class RelationshipAnalysis:
    """Project summary plus the validated relationship edges."""

    summary: str
    relationships: tuple[Relationship, ...] = ()


@dataclass(frozen=True, slots=True)
class ChapterRef:
    """Number, title and filename of a planned chapter."""

    number: int
    name: str
    filename: str


@dataclass(frozen=True, slots=True)
class Chapter:
    """A written tutorial chapter."""

    number: int
    abstraction_index: int
    name: str
    filename: str
    content: str
    previous_chapters_summary: str
    error: str | None = None


@dataclass(frozen=True, slots=True)
class PipelineContext:
    """Aggregate record threaded through the pipeline stages.

    Built incrementally: a field stays ``None`` until the stage that owns
    it has run.  Stages never mutate a context, they return a new one
    (see :func:`dataclasses.replace`).
    """

    repo: str
    project_name: str
    branch: str | None = None
    language: str = "english"
    files: tuple[SourceFile, ...] | None = None
    used_fallback_files: bool = False
    overview: str | None = None
    abstractions_raw: str | None = None
    abstractions: tuple[Abstraction, ...] | None = None
    relationship_analysis: RelationshipAnalysis | None = None
    chapter_order: tuple[int, ...] | None = None
    chapters: tuple[Chapter, ...] | None = None
    notes: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """The produced result; the shape callers and the UI depend on."""

    abstractions_raw: str
    abstractions: tuple[Abstraction, ...]
    relationship_summary: str
    relationships: tuple[Relationship, ...]
    chapter_order: tuple[int, ...]
    chapters: tuple[str, ...]
    files_data: tuple[SourceFile, ...]
    notes: tuple[str, ...] = field(default_factory=tuple)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "abstractions": {
                "raw": self.abstractions_raw,
                "items": [a.to_dict() for a in self.abstractions],
            },
            "abstractionsList": [a.name for a in self.abstractions],
            "relationshipSummary": self.relationship_summary,
            "relationships": [r.to_dict() for r in self.relationships],
            "chapterOrder": list(self.chapter_order),
            "chapters": list(self.chapters),
            "filesData": [[f.path, f.content] for f in self.files_data],
            "notes": list(self.notes),
            "error": self.error,
        }


RESULT_FIELDS: frozenset[str] = frozenset(
    {
        "abstractions",
        "abstractionsList",
        "relationshipSummary",
        "relationships",
        "chapterOrder",
        "chapters",
        "filesData",
    }
)
