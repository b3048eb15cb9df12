import asyncio

import pytest

from repo_tutor.domain.entities import (
    FetchOutcome,
    FileContent,
    NodeType,
    RemoteEntry,
    RepoMetadata,
)
from repo_tutor.domain.exceptions import (
    InvalidRepoIdentifierError,
    RemoteTransportError,
    RepositoryNotFoundError,
)
from repo_tutor.services.repo_fetcher import (
    MAX_FILE_SIZE_BYTES,
    RepositoryFetcher,
    count_nodes,
    fetch_error_marker,
    flatten_files,
    too_large_marker,
)


class StubApi:
    """In-memory RepositoryApi keyed by path."""

    def __init__(
        self, listings, contents=None, *, failing=(), broken=(), default_branch="main", delay=0.0,
        metadata_error=None,
    ):
        self.listings = listings
        self.contents = contents or {}
        self.failing = set(failing)
        self.broken = set(broken)
        self.metadata_error = metadata_error
        self.default_branch = default_branch
        self.delay = delay
        self.metadata_calls = 0
        self.list_calls: list[tuple[str, str]] = []
        self.content_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _remote(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def fetch_metadata(self, repo):
        self.metadata_calls += 1
        if self.metadata_error is not None:
            raise self.metadata_error
        return RepoMetadata(
            owner=repo.owner, repo=repo.repo, default_branch=self.default_branch,
            description="A demo repository", language="Python",
        )

    async def list_contents(self, repo, path, ref):
        self.list_calls.append((path, ref))
        await self._remote()
        if path in self.failing:
            raise RepositoryNotFoundError(f"Not found: {path}")
        if path in self.broken:
            raise ValueError(f"undecodable listing for {path}")
        return list(self.listings.get(path, []))

    async def fetch_file_content(self, repo, path, ref):
        self.content_calls.append(path)
        await self._remote()
        if path in self.failing:
            raise RemoteTransportError(f"boom: {path}")
        if path in self.broken:
            raise ValueError(f"undecodable payload for {path}")
        return FileContent(path=path, content=self.contents.get(path, f"content of {path}"))


def _file(path, size=10):
    return RemoteEntry(name=path.rsplit("/", 1)[-1], path=path, type="file", size=size)


def _dir(path):
    return RemoteEntry(name=path.rsplit("/", 1)[-1], path=path, type="dir")


def _by_path(tree):
    found = {}
    for node in tree:
        found[node.path] = node
        if node.children:
            found.update(_by_path(node.children))
    return found


def test_builds_nested_tree_with_content():
    api = StubApi(
        {
            "": [_file("README.md"), _dir("src")],
            "src": [_file("src/app.py"), _file("src/util.py")],
        },
        {"src/app.py": "print('hi')"},
    )
    tree = asyncio.run(RepositoryFetcher(api).fetch("octocat/Hello-World"))

    nodes = _by_path(tree)
    assert nodes["src"].type is NodeType.DIRECTORY
    assert [c.path for c in nodes["src"].children] == ["src/app.py", "src/util.py"]
    assert nodes["src/app.py"].content == "print('hi')"
    assert nodes["src/app.py"].outcome is FetchOutcome.FETCHED
    assert nodes["src/app.py"].children is None
    assert api.list_calls[0] == ("", "main")


def test_explicit_branch_is_used_and_metadata_still_collected():
    api = StubApi({"": [_file("a.py")]})
    snapshot = asyncio.run(RepositoryFetcher(api).snapshot("https://github.com/o/r", "dev"))

    assert snapshot.branch == "dev"
    assert api.list_calls == [("", "dev")]
    assert (snapshot.description, snapshot.language) == ("A demo repository", "Python")
    assert snapshot.to_dict()["repository"]["language"] == "Python"


def test_metadata_failure_with_explicit_branch_is_tolerated():
    api = StubApi({"": [_file("a.py")]}, metadata_error=RemoteTransportError("metadata down"))
    snapshot = asyncio.run(RepositoryFetcher(api).snapshot("o/r", "dev"))

    assert snapshot.branch == "dev"
    assert snapshot.description is None
    assert snapshot.total_files == 1


def test_metadata_failure_without_branch_propagates():
    api = StubApi({"": [_file("a.py")]}, metadata_error=RepositoryNotFoundError("Not found: o/r"))
    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(RepositoryFetcher(api).snapshot("o/r"))
    assert api.list_calls == []


def test_default_branch_comes_from_metadata():
    api = StubApi({"": [_file("a.py")]}, default_branch="trunk")
    snapshot = asyncio.run(RepositoryFetcher(api).snapshot("o/r"))

    assert snapshot.branch == "trunk"
    assert api.metadata_calls == 1


def test_file_at_size_ceiling_gets_marker_without_fetch():
    api = StubApi(
        {
            "": [
                _file("big.py", size=MAX_FILE_SIZE_BYTES),
                _file("huge.bin", size=MAX_FILE_SIZE_BYTES * 3),
                _file("small.py", size=MAX_FILE_SIZE_BYTES - 1),
            ]
        }
    )
    tree = asyncio.run(RepositoryFetcher(api).fetch("o/r"))
    nodes = _by_path(tree)

    assert nodes["big.py"].content == too_large_marker(MAX_FILE_SIZE_BYTES)
    assert nodes["big.py"].outcome is FetchOutcome.TOO_LARGE
    assert nodes["huge.bin"].content == too_large_marker(MAX_FILE_SIZE_BYTES * 3)
    assert api.content_calls == ["small.py"]


def test_single_file_failure_does_not_affect_siblings():
    api = StubApi(
        {"": [_file("a.py"), _file("b.py"), _file("c.py")]},
        failing={"b.py"},
    )
    tree = asyncio.run(RepositoryFetcher(api).fetch("o/r"))
    nodes = _by_path(tree)

    assert nodes["a.py"].content == "content of a.py"
    assert nodes["c.py"].content == "content of c.py"
    assert nodes["b.py"].outcome is FetchOutcome.FAILED
    assert nodes["b.py"].content == fetch_error_marker(RemoteTransportError("boom: b.py"))


def test_failing_subdirectory_becomes_empty_subtree():
    api = StubApi(
        {
            "": [_dir("broken"), _dir("ok")],
            "ok": [_file("ok/x.py")],
        },
        failing={"broken"},
    )
    tree = asyncio.run(RepositoryFetcher(api).fetch("o/r"))
    nodes = _by_path(tree)

    assert nodes["broken"].children == ()
    assert nodes["broken"].outcome is FetchOutcome.FAILED
    assert nodes["ok/x.py"].content == "content of ok/x.py"


def test_root_listing_failure_propagates():
    api = StubApi({}, failing={""})
    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(RepositoryFetcher(api).fetch("o/r"))


def test_invalid_identifier_raises_before_any_call():
    api = StubApi({})
    with pytest.raises(InvalidRepoIdentifierError):
        asyncio.run(RepositoryFetcher(api).fetch("not a repository"))
    assert api.metadata_calls == 0
    assert api.list_calls == []


def test_filtered_paths_are_not_fetched():
    api = StubApi(
        {
            "": [_dir("node_modules"), _file("logo.png"), _file("main.go")],
            "node_modules": [_file("node_modules/lib.js")],
        }
    )
    tree = asyncio.run(RepositoryFetcher(api).fetch("o/r"))
    nodes = _by_path(tree)

    assert ("node_modules", "main") not in api.list_calls
    assert nodes["node_modules"].children == ()
    assert nodes["logo.png"].content is None
    assert nodes["logo.png"].outcome is FetchOutcome.SKIPPED
    assert api.content_calls == ["main.go"]


def test_concurrency_never_exceeds_limit():
    entries = [_file(f"f{i}.py") for i in range(12)]
    api = StubApi({"": [_dir("pkg"), *entries], "pkg": [_file("pkg/m.py")]}, delay=0.01)
    asyncio.run(RepositoryFetcher(api, max_concurrency=3).fetch("o/r"))

    assert 1 <= api.max_in_flight <= 3
    assert len(api.content_calls) == 13


def test_flatten_and_count():
    api = StubApi(
        {
            "": [_file("a.py"), _dir("d"), _file("big.py", size=MAX_FILE_SIZE_BYTES)],
            "d": [_file("d/b.md"), _file("d/c.png")],
        }
    )
    snapshot = asyncio.run(RepositoryFetcher(api).snapshot("o/r"))

    assert [f.path for f in flatten_files(snapshot.tree)] == ["a.py", "d/b.md"]
    assert count_nodes(snapshot.tree) == (4, 1)
    assert snapshot.total_files == 4
    assert snapshot.total_directories == 1
    assert snapshot.to_dict()["repository"]["fullName"] == "o/r"


def test_unexpected_item_errors_are_isolated():
    api = StubApi(
        {
            "": [_file("a.py"), _file("b.py"), _dir("odd"), _dir("ok")],
            "ok": [_file("ok/x.py")],
        },
        broken={"a.py", "odd"},
    )
    tree = asyncio.run(RepositoryFetcher(api).fetch("o/r"))
    nodes = _by_path(tree)

    assert nodes["a.py"].outcome is FetchOutcome.FAILED
    assert nodes["a.py"].content == fetch_error_marker(ValueError("undecodable payload for a.py"))
    assert nodes["b.py"].content == "content of b.py"
    assert nodes["odd"].outcome is FetchOutcome.FAILED
    assert nodes["odd"].children == ()
    assert nodes["ok/x.py"].content == "content of ok/x.py"
