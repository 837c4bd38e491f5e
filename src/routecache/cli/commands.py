"""
CLI Command Handlers Facade.

This module re-exports handlers from `routecache.cli.handlers` so the
dispatcher and tests have a single import point.
"""

from routecache.cli.handlers.analyze import handle_analyze, render_table

__all__ = [
  "handle_analyze",
  "render_table",
]
