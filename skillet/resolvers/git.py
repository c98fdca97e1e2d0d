"""Git source parsing, shallow checkout and remote commit lookup."""

from __future__ import annotations

import os
import posixpath
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from skillet.exceptions import GitSourceError
from skillet.logging import get_logger
from skillet.process import CommandRunner, run_command

log = get_logger(__name__)

SHORTHAND_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+/[a-zA-Z0-9._-]+$")
SSH_PATTERN = re.compile(r"^git@[^:]+:\S+$")
_LOCAL_PREFIXES = (".", "/", "~/", "file://")
_MIN_COMMIT_SHA_CHARS = 40


@dataclass
class ParsedGitSource:
    original: str
    clone_url: str
    ref: str | None = None
    subdirectory: str | None = None


@dataclass
class ResolvedGitSource:
    parsed: ParsedGitSource
    checkout_path: Path
    content_path: Path
    commit_sha: str


def is_local_path(source: str) -> bool:
    return source.startswith(_LOCAL_PREFIXES)


def _split_fragment(source: str) -> tuple[str, str | None]:
    base, sep, fragment = source.partition("#")
    return base, (fragment if sep else None)


def _parse_tree_url(source: str) -> tuple[str, str | None, str | None] | None:
    if not source.startswith(("http://", "https://")):
        return None

    parsed = urlparse(source)
    if not parsed.netloc:
        raise GitSourceError(f"Invalid URL source: {source}")

    segments = parsed.path.strip("/").split("/")
    if "tree" not in segments:
        return None
    tree_index = segments.index("tree")
    if tree_index < 2 or tree_index + 1 >= len(segments):
        raise GitSourceError(f"Invalid tree source format: {source}")

    owner, repo = segments[0], segments[1]
    ref = segments[tree_index + 1] or None
    subdirectory = "/".join(segments[tree_index + 2 :]) or None
    return f"{parsed.scheme}://{parsed.netloc}/{owner}/{repo}.git", ref, subdirectory


def _normalize_clone_url(source: str) -> str:
    if SSH_PATTERN.match(source):
        return source if source.endswith(".git") else f"{source}.git"

    if source.startswith(("http://", "https://")):
        trimmed = source.rstrip("/")
        return trimmed if trimmed.endswith(".git") else f"{trimmed}.git"

    if is_local_path(source):
        return source

    if SHORTHAND_PATTERN.match(source):
        return f"https://github.com/{source}.git"

    raise GitSourceError(f"Unsupported git source format: {source}")


def _normalize_subdirectory(subdirectory: str) -> str | None:
    normalized = subdirectory.replace("\\", "/").strip("/")
    if not normalized:
        return None
    if ".." in normalized:
        raise GitSourceError(f"Invalid subdirectory path: {subdirectory}")
    return posixpath.normpath(normalized)


def _resolve_local_path(source: str) -> str:
    if source.startswith("file://"):
        return os.path.abspath(source[len("file://") :])
    if source.startswith("~/"):
        return str(Path.home() / source[2:])
    return os.path.abspath(source)


def parse_git_source(source: str) -> ParsedGitSource:
    """Parse a git source identifier.

    Accepted forms: ``owner/repo`` shorthand, ``https://`` clone URLs,
    ``git@host:path`` SSH URLs, web ``.../tree/<ref>/<path>`` URLs and local
    paths. Any of them may carry a ``#ref[:subdir]`` suffix that overrides the
    ref and subdirectory embedded earlier.
    """
    original = str(source or "").strip()
    if not original:
        raise GitSourceError("Git source cannot be empty")

    base, fragment = _split_fragment(original)
    tree = _parse_tree_url(base)
    if tree is not None:
        clone_url, ref, subdirectory = tree
    else:
        clone_url, ref, subdirectory = _normalize_clone_url(base), None, None

    if fragment:
        fragment_ref, _, fragment_subdirectory = fragment.partition(":")
        if fragment_ref:
            ref = fragment_ref
        if fragment_subdirectory:
            subdirectory = fragment_subdirectory

    if subdirectory:
        subdirectory = _normalize_subdirectory(subdirectory)

    if is_local_path(clone_url):
        clone_url = _resolve_local_path(clone_url)

    return ParsedGitSource(
        original=original,
        clone_url=clone_url,
        ref=ref,
        subdirectory=subdirectory,
    )


def _run_git(runner: CommandRunner, args: list[str], failure_message: str) -> str:
    command = ["git", *args]
    result = runner(command)
    if result.ok:
        return result.stdout.strip()
    details = (result.stderr or result.stdout or "").strip()
    message = f"{failure_message} ({' '.join(command)})"
    if details:
        message = f"{message}: {details}"
    raise GitSourceError(message, command=command, stderr=details)


def _resolve_content_path(checkout_path: Path, subdirectory: str | None) -> Path:
    if not subdirectory:
        return checkout_path

    resolved = (checkout_path / subdirectory).resolve()
    try:
        resolved.relative_to(checkout_path.resolve())
    except ValueError as exc:
        raise GitSourceError(f"Subdirectory escapes checkout root: {subdirectory}") from exc

    if not resolved.is_dir():
        raise GitSourceError(f"Subdirectory not found in repository: {subdirectory}")
    return resolved


def resolve_git_source(
    source: str,
    *,
    temp_root: str | Path | None = None,
    runner: CommandRunner = run_command,
) -> ResolvedGitSource:
    """Shallow-clone a git source into a fresh scratch directory.

    The scratch directory is left in place for the caller to reclaim.
    """
    parsed = parse_git_source(source)

    if os.path.isabs(parsed.clone_url) and not os.path.exists(parsed.clone_url):
        raise GitSourceError(f"Local repository does not exist: {parsed.clone_url}")

    root = Path(temp_root).expanduser().resolve() if temp_root else Path(tempfile.gettempdir())
    root.mkdir(parents=True, exist_ok=True)
    checkout_path = Path(tempfile.mkdtemp(prefix="skillet-git-", dir=root))

    log.debug("Cloning repository", url=parsed.clone_url, ref=parsed.ref, checkout=str(checkout_path))
    _run_git(
        runner,
        ["clone", "--depth", "1", parsed.clone_url, str(checkout_path)],
        "Failed to clone repository",
    )

    if parsed.ref:
        _run_git(
            runner,
            ["-C", str(checkout_path), "fetch", "--depth", "1", "origin", parsed.ref],
            f"Failed to fetch ref '{parsed.ref}'",
        )
        _run_git(
            runner,
            ["-C", str(checkout_path), "checkout", "FETCH_HEAD"],
            "Failed to checkout fetched ref",
        )

    commit_sha = _run_git(
        runner,
        ["-C", str(checkout_path), "rev-parse", "HEAD"],
        "Failed to resolve commit SHA",
    )
    content_path = _resolve_content_path(checkout_path, parsed.subdirectory)

    return ResolvedGitSource(
        parsed=parsed,
        checkout_path=checkout_path,
        content_path=content_path,
        commit_sha=commit_sha,
    )


def parse_ls_remote_commit(output: str) -> str | None:
    """Pick the commit from ``git ls-remote`` output, preferring peeled tags."""
    fallback: str | None = None
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split(maxsplit=1)
        commit = parts[0].strip()
        ref = parts[1].strip() if len(parts) > 1 else ""
        if ref.endswith("^{}"):
            return commit
        if fallback is None:
            fallback = commit
    return fallback


def query_remote_commit(
    url: str,
    ref: str | None = None,
    *,
    runner: CommandRunner = run_command,
) -> str:
    """Return the commit a remote ref (or HEAD) currently points at."""
    requested_ref = ref or "HEAD"
    output = _run_git(runner, ["ls-remote", url, requested_ref], "Failed to query remote")
    commit = parse_ls_remote_commit(output)
    if not commit:
        raise GitSourceError(f"Unable to resolve latest git digest for {url} ({requested_ref})")
    if len(commit) < _MIN_COMMIT_SHA_CHARS:
        raise GitSourceError(f"Unexpected git ls-remote output for {url}")
    return commit
