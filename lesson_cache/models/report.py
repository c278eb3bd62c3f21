"""
Dataclass describing the outcome of a cache integrity pass.
"""

from dataclasses import dataclass, field


@dataclass
class IntegrityReport:
    """What `verify_cache_integrity` found and repaired."""

    checked: int = 0
    missing_files: list[str] = field(default_factory=list)
    stale: list[str] = field(default_factory=list)
    orphans_removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def evicted(self) -> list[str]:
        """Ids removed from the index, in the order they were found."""
        return self.missing_files + self.stale

    @property
    def is_clean(self) -> bool:
        return not (self.evicted or self.orphans_removed or self.failed or self.error)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "checked": self.checked,
            "missing_files": list(self.missing_files),
            "stale": list(self.stale),
            "orphans_removed": list(self.orphans_removed),
            "failed": list(self.failed),
            "error": self.error,
        }
