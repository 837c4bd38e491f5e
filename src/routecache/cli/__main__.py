"""
Main Entry Point for routecache CLI.

This module handles argument parsing and dispatches to specific command
handlers defined in `routecache.cli.commands`.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from routecache import __version__
from routecache.cli import commands


def main(argv: Optional[List[str]] = None) -> int:
  """
  Main CLI entry point.

  Parses arguments via argparse and calls the appropriate handler function.

  Args:
      argv: Optional list of command line arguments (defaults to sys.argv).

  Returns:
      int: Exit code (0 for success, non-zero for failure).
  """
  parser = argparse.ArgumentParser(description="routecache: Route Staticness Classifier for Hono apps")
  parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

  subparsers = parser.add_subparsers(dest="command", required=True)

  # --- Command: ANALYZE ---
  cmd_analyze = subparsers.add_parser("analyze", help="Classify routes as STATIC (cacheable) or DYNAMIC")
  cmd_analyze.add_argument(
    "path",
    type=Path,
    nargs="?",
    default=Path("."),
    help="Project root (default: current directory)",
  )
  cmd_analyze.add_argument("--json", action="store_true", help="Print the report as JSON")
  cmd_analyze.add_argument("--entry", default=None, help="Entry file relative to the project (default: from toml)")
  cmd_analyze.add_argument("--tsconfig", default=None, help="Compiler configuration file (default: from toml)")
  cmd_analyze.add_argument("--max-depth", type=int, default=None, help="Static evaluation depth bound")

  args = parser.parse_args(argv)

  if args.command == "analyze":
    return commands.handle_analyze(
      args.path,
      json_mode=args.json,
      entry_file=args.entry,
      tsconfig=args.tsconfig,
      max_depth=args.max_depth,
    )

  return 0


if __name__ == "__main__":
  sys.exit(main())
