"""Resume positions for partially watched content."""

from mosaic.resume.store import ResumeStore, is_resumable

__all__ = ["ResumeStore", "is_resumable"]
