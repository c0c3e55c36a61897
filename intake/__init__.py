"""File intake package.

Watch an input folder, dispatch new files to format handlers, back them up and
archive them, and run periodic exports. `FileIntakeProcessor` is the entry point.
"""

from intake.processor import FileIntakeProcessor

__all__ = [
    "archive",
    "codecs",
    "config",
    "console",
    "dispatcher",
    "errors",
    "formats",
    "handlers",
    "processor",
    "scheduler",
    "watching",
    "FileIntakeProcessor",
]
