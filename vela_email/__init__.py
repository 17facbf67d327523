"""Send CI build notifications by email."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "errors",
    "models",
    "defaults",
    "environment",
    "templating",
    "assembler",
    "auth",
    "mailer",
    "orchestrator",
    "cli",
]
