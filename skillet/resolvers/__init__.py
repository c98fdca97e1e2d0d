"""Source resolvers: turn a source identifier into a local content directory."""

from skillet.resolvers.source import ResolvedSource, SourceType, resolve_source

__all__ = ["ResolvedSource", "SourceType", "resolve_source"]
