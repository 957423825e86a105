"""Keep a repository wiki in sync with its source files using agent CLIs."""

__version__ = "0.1.0"
