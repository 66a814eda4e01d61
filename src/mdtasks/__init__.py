"""mdtasks: gated progress tracking for Markdown task lists."""

__version__ = "0.4.0"
