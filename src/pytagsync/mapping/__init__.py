"""Source-to-target identifier mapping."""

from pytagsync.mapping.id_mapper import IdMapper

__all__ = ["IdMapper"]
