"""Command line interface."""

from __future__ import annotations

from tlsfetch.cli.main import main

__all__ = ["main"]
