from __future__ import annotations

import re

import httpx
import structlog

from gpustack.core.exceptions import ResolutionError

logger = structlog.get_logger(__name__)

GITHUB_API_URL = "https://api.github.com"
SHORT_SHA_LENGTH = 8

_REPO_PATTERN = re.compile(r"github\.com[:/]([^/]+)/([^/.]+)")


def parse_repo_url(repo: str) -> tuple[str, str]:
    """Extract owner and name from a GitHub repository URL.

    Accepts https URLs, ssh URLs such as
    `git@github.com:NVIDIA/nvidia-container-toolkit.git` and bare
    `github.com/owner/name` forms.
    """
    match = _REPO_PATTERN.search(repo)
    if match is None:
        raise ResolutionError(f"invalid GitHub repo URL: {repo}")
    return match.group(1), match.group(2)


def normalize_ref(ref: str) -> str:
    for prefix in ("refs/tags/", "refs/heads/"):
        if ref.startswith(prefix):
            ref = ref[len(prefix) :]
    return ref


class GitHubRefResolver:
    client: httpx.Client | None
    timeout: float

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = 30,
        base_url: str = GITHUB_API_URL,
    ):
        """Initialize.

        Args:
            client:
                HTTP client to use. A new client is created per call
                when not given.
            timeout:
                HTTP timeout in seconds. Defaults to 30 seconds.
            base_url:
                GitHub API root.
        """
        self.client = client
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def resolve(self, repo: str, ref: str) -> tuple[str, str]:
        """Resolve a branch, tag, pull request ref or SHA to a commit.

        Args:
            repo: GitHub repository URL.
            ref: Git reference.

        Returns:
            Full and short commit SHA.

        Raises:
            ResolutionError: The ref does not exist or cannot be looked up.
        """
        owner, name = parse_repo_url(repo)
        url = (
            f"{self.base_url}/repos/{owner}/{name}"
            f"/commits/{normalize_ref(ref)}"
        )
        headers = {"Accept": "application/vnd.github.v3+json"}
        try:
            if self.client is not None:
                response = self.client.get(url, headers=headers)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise ResolutionError(f"failed to resolve ref {ref}: {e}") from e
        if response.status_code != 200:
            raise ResolutionError(
                f"ref not found: {ref} (status {response.status_code})"
            )
        sha = response.json().get("sha")
        if not sha:
            raise ResolutionError(f"empty SHA in response for ref: {ref}")
        logger.debug("Resolved git ref", repo=repo, ref=ref, commit=sha)
        return sha, sha[:SHORT_SHA_LENGTH]
