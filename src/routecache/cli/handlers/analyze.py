"""
Analyze Command Handler.

Classifies the routes of a Hono project and reports them either as a table
for human inspection or as JSON for deployment tooling.
"""

import json
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from routecache.analysis.loader import SourceParseError
from routecache.config import AnalyzerConfig
from routecache.core.engine import AnalysisEngine
from routecache.core.route_entry import RouteEntry
from routecache.utils.console import console, log_error, log_info, log_success, set_console


def render_table(routes: List[RouteEntry]) -> Table:
  """
  Builds the route table.

  Args:
      routes: Classified routes, in report order.

  Returns:
      Table: Method, Path, Type and Details columns.
  """
  table = Table(title="Route Analysis")
  table.add_column("Method", style="cyan")
  table.add_column("Path", style="path")
  table.add_column("Type")
  table.add_column("Details", style="dim")

  for route in routes:
    if route.is_static:
      table.add_row(route.method, escape(route.path), "[static]STATIC[/static]", "Cacheable")
    else:
      table.add_row(route.method, escape(route.path), "[dynamic]DYNAMIC[/dynamic]", escape(route.reason or ""))
  return table


def handle_analyze(
  path: Path,
  json_mode: bool = False,
  entry_file: Optional[str] = None,
  tsconfig: Optional[str] = None,
  max_depth: Optional[int] = None,
) -> int:
  """
  Runs the route classifier over a project directory.

  Args:
      path: Project root.
      json_mode: If True, print the report as a JSON list of route objects.
      entry_file: Override for the entry file (relative to `path`).
      tsconfig: Override for the compiler configuration file.
      max_depth: Override for the static evaluation depth bound.

  Returns:
      int: Exit code (0 on success, 1 if the project could not be analysed).
  """
  if json_mode:
    # Keep stdout parseable: diagnostics go to stderr.
    set_console(Console(stderr=True))

  if not path.is_dir():
    log_error(f"Project directory not found: {escape(str(path))}")
    return 1

  try:
    config = AnalyzerConfig.load(entry_file=entry_file, tsconfig=tsconfig, max_depth=max_depth, search_path=path)
  except ValueError as e:
    log_error(escape(str(e)))
    return 1

  try:
    result = AnalysisEngine(config).run(path)
  except SourceParseError as e:
    log_error(escape(str(e)))
    return 1

  if json_mode:
    print(json.dumps([route.to_dict() for route in result.routes], indent=2))
    return 0

  if not result.entry_found:
    return 0

  if not result.routes:
    log_info("No routes found.")
    return 0

  console.print(render_table(result.routes))

  count_static = len(result.static_routes)
  count_dynamic = len(result.routes) - count_static
  console.print(f"[bold]Routes:[/bold]  {len(result.routes)}")
  console.print(f"Static:  [static]{count_static}[/static]")
  console.print(f"Dynamic: [dynamic]{count_dynamic}[/dynamic]")

  if count_static:
    log_success(f"{count_static} route(s) can be cached at the edge.")
  return 0
