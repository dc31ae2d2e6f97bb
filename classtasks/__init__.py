"""Task templates, class assignments and student marks served over HTTP, with domain events."""

__version__ = "1.0.0"