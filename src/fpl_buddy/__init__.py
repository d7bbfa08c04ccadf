"""Live FPL scoreboard: poll a squad, score it, attribute every point change."""

from .cli import main

__version__ = "0.1.0"

__all__ = ["__version__", "main"]
