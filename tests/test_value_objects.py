import pytest

from repo_tutor.domain.exceptions import InvalidRepoIdentifierError
from repo_tutor.domain.value_objects import RepoIdentifier


@pytest.mark.parametrize(
    "raw",
    [
        "octocat/Hello-World",
        "octocat/Hello-World/",
        "octocat/Hello-World.git",
        "https://github.com/octocat/Hello-World",
        "http://www.github.com/octocat/Hello-World.git",
        "github.com/octocat/Hello-World",
        "https://github.com/octocat/Hello-World/tree/main/docs",
        "  https://github.com/octocat/Hello-World  ",
    ],
)
def test_accepted_forms(raw):
    identifier = RepoIdentifier.parse(raw)
    assert identifier.owner == "octocat"
    assert identifier.repo == "Hello-World"
    assert identifier.full_name == "octocat/Hello-World"
    assert identifier.html_url == "https://github.com/octocat/Hello-World"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "octocat",
        "octocat/Hello-World/extra",
        "https://gitlab.com/octocat/Hello-World",
        "https://github.com/octocat",
        "not a repo",
        "../etc",
    ],
)
def test_rejected_forms(raw):
    with pytest.raises(InvalidRepoIdentifierError):
        RepoIdentifier.parse(raw)
