"""``skillet check``: compare lockfile digests against upstream sources."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import httpx

from skillet.exceptions import SkilletError
from skillet.lockfile import LockfileSource, load_lockfile
from skillet.logging import get_logger
from skillet.process import CommandRunner, run_command
from skillet.prompts import WriteLine
from skillet.resolvers.git import query_remote_commit
from skillet.resolvers.oci import fetch_oci_digest

log = get_logger(__name__)

CheckStatus = Literal["up-to-date", "outdated", "unsupported", "error"]

NO_LOCKFILE_MESSAGE = "No lockfile found. Run add first to generate skillet.lock.yaml."


@dataclass
class SourceCheck:
    status: CheckStatus
    latest_digest: str | None = None
    message: str | None = None


@dataclass
class CheckResult:
    source: LockfileSource
    skill: str
    status: CheckStatus
    current_digest: str | None = None
    latest_digest: str | None = None
    message: str | None = None

    def to_line(self) -> str:
        line = f"{self.skill}\t{self.status}\t{self.source.url}"
        if self.status == "error" and self.message:
            line = f"{line}\t{self.message}"
        return line


def _compare(recorded: str | None, latest: str) -> SourceCheck:
    # A source without a recorded digest is never reported as outdated.
    if recorded and latest != recorded:
        return SourceCheck(status="outdated", latest_digest=latest)
    return SourceCheck(status="up-to-date", latest_digest=latest)


async def check_source(
    source: LockfileSource,
    *,
    runner: CommandRunner = run_command,
    client: httpx.AsyncClient | None = None,
    insecure_http: bool | None = None,
) -> SourceCheck:
    """Query the upstream digest of one lockfile source.

    Failures are reported as an ``error`` status instead of being raised, so
    one unreachable source never hides the others.
    """
    if source.type not in ("git", "oci"):
        return SourceCheck(
            status="unsupported",
            message=f"Source type '{source.type}' is not checked for updates",
        )

    try:
        if source.type == "git":
            latest = query_remote_commit(source.url, source.ref, runner=runner)
        else:
            latest = await fetch_oci_digest(source.url, insecure_http=insecure_http, client=client)
    except (SkilletError, OSError) as exc:
        log.debug("Source check failed", type=source.type, url=source.url, error=str(exc))
        return SourceCheck(status="error", message=str(exc))

    return _compare(source.digest, latest)


async def collect_check_results(
    sources: list[LockfileSource],
    *,
    runner: CommandRunner = run_command,
    client: httpx.AsyncClient | None = None,
    insecure_http: bool | None = None,
) -> list[CheckResult]:
    """Check each source in turn and expand the outcome to one result per skill."""
    results: list[CheckResult] = []
    for source in sources:
        outcome = await check_source(source, runner=runner, client=client, insecure_http=insecure_http)
        for skill in source.skills:
            results.append(
                CheckResult(
                    source=source,
                    skill=skill,
                    status=outcome.status,
                    current_digest=source.digest,
                    latest_digest=outcome.latest_digest,
                    message=outcome.message,
                )
            )
    results.sort(key=lambda item: item.skill)
    return results


async def run_check_command(
    *,
    stdout: WriteLine,
    stderr: WriteLine,
    global_scope: bool = False,
    cwd: str | Path | None = None,
    home_dir: str | Path | None = None,
    runner: CommandRunner = run_command,
    client: httpx.AsyncClient | None = None,
    insecure_http: bool | None = None,
) -> int:
    try:
        lock = load_lockfile(scope="global" if global_scope else "project", cwd=cwd, home_dir=home_dir)
    except SkilletError as exc:
        stderr(str(exc))
        return 1
    if lock is None:
        stderr(NO_LOCKFILE_MESSAGE)
        return 1

    results = await collect_check_results(
        lock.sources,
        runner=runner,
        client=client,
        insecure_http=insecure_http,
    )
    for result in results:
        stdout(result.to_line())
    return 0
