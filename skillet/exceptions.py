"""Custom exceptions for Skillet."""


class SkilletError(Exception):
    """Base exception for Skillet."""

    pass


class ConfigurationError(SkilletError):
    """Configuration-related errors."""

    pass


class SkillParseError(SkilletError):
    """SKILL.md frontmatter or body failed validation."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ResolveError(SkilletError):
    """A source identifier could not be turned into local content."""

    pass


class GitSourceError(ResolveError):
    """Git source parsing or git subprocess failure."""

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = ""):
        super().__init__(message)
        self.command = list(command or [])
        self.stderr = stderr


class ArchiveResolveError(ResolveError):
    """HTTP archive download, inspection or extraction failure."""

    pass


class OciResolveError(ResolveError):
    """OCI reference, manifest or layer failure."""

    pass


class InstallConflictError(SkilletError):
    """Install target is occupied by something the installer must not replace."""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class AgentDetectionError(SkilletError):
    """No usable agent could be resolved for an install."""

    pass


class SelectionError(SkilletError):
    """Requested skills could not be selected from a source."""

    pass


class LockfileError(SkilletError):
    """Lockfile document could not be read."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path
