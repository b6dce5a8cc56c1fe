"""Task files, dependency resolution, workstream queues, status tracking and completion checks."""

__version__ = "0.1.0"