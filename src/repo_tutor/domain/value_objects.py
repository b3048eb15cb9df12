"""Value objects — self-validating domain primitives."""

from __future__ import annotations

import re
from dataclasses import dataclass

from repo_tutor.domain.exceptions import InvalidRepoIdentifierError

_NAME = r"[A-Za-z0-9\-_.]+"

_GITHUB_URL_RE = re.compile(
    rf"^(?:https?://)?(?:www\.)?github\.com/(?P<owner>{_NAME})/(?P<repo>{_NAME}?)(?:\.git)?(?:/.*)?$"
)
_BARE_RE = re.compile(rf"^(?P<owner>{_NAME})/(?P<repo>{_NAME}?)(?:\.git)?/?$")


@dataclass(frozen=True, slots=True)
class RepoIdentifier:
    """Validated repository identifier.

    Accepts both the bare ``owner/name`` form and GitHub URLs such as
    ``https://github.com/psf/requests`` or
    ``github.com/psf/requests/tree/main``.  Rejects anything else.
    """

    owner: str
    repo: str
    raw: str

    @classmethod
    def parse(cls, text: str) -> RepoIdentifier:
        """Parse and validate a raw identifier string."""
        raw = (text or "").strip()
        match = _GITHUB_URL_RE.match(raw)
        if match is None and "://" not in raw and not raw.lower().startswith("github.com"):
            match = _BARE_RE.match(raw)
        if match is None or match["owner"] in {".", ".."} or match["repo"] in {"", ".", ".."}:
            raise InvalidRepoIdentifierError(
                f"Invalid repository identifier: '{raw}'. "
                "Expected 'owner/name' or https://github.com/<owner>/<name>"
            )
        return cls(owner=match["owner"], repo=match["repo"], raw=raw)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def html_url(self) -> str:
        return f"https://github.com/{self.full_name}"
