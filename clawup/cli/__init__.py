"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import ClawupModalCLI, main

__all__ = ['ClawupModalCLI', 'main']
