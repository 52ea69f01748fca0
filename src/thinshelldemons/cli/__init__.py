"""Command-line interface modules for ThinShellDemons."""

__all__ = [
    "register_thin_shell_demons",
]
