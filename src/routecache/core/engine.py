"""
Orchestration Engine for Route Analysis.

This module provides the `AnalysisEngine`, the driver of one analysis run.
It wires the passes together over a freshly loaded program:

1.  **Loading**: `SourceLoader` parses the entry file and everything it
    statically imports. A missing entry file ends the run with an empty,
    warned report.
2.  **Resolution**: a `SymbolResolver` indexes declarations on demand and is
    shared, read-only, by the later passes.
3.  **Walking**: `RouterGraphWalker` finds the root router and visits every
    registration and mount, asking the `HandlerPurityAnalyzer` (backed by the
    `StaticValueEvaluator`) for each route's verdict.
4.  **Aggregation**: `ResultAggregator` orders the entries by path.

Every object is created per run; no state survives between calls to `run`.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from routecache.analysis.aggregate import ResultAggregator
from routecache.analysis.loader import SourceLoader
from routecache.analysis.purity import HandlerPurityAnalyzer
from routecache.analysis.router_graph import RouterGraphWalker
from routecache.analysis.static_values import StaticValueEvaluator
from routecache.analysis.symbol_table import SymbolResolver
from routecache.config import AnalyzerConfig
from routecache.core.route_entry import RouteEntry
from routecache.utils.console import log_warning


class AnalysisResult(BaseModel):
  """
  Structured result of a single analysis run.
  """

  routes: List[RouteEntry] = Field(default_factory=list, description="Classified routes, sorted by path.")
  warnings: List[str] = Field(default_factory=list, description="Non-fatal conditions met during the run.")
  entry_found: bool = Field(default=True, description="False when the entry file does not exist.")

  @property
  def static_routes(self) -> List[RouteEntry]:
    """
    The cacheable subset of the report.

    Returns:
        List[RouteEntry]: STATIC entries, in report order.
    """
    return [route for route in self.routes if route.is_static]


class AnalysisEngine:
  """
  The main analysis unit.

  Encapsulates the configuration for classifying the routes of one project.
  """

  def __init__(self, config: Optional[AnalyzerConfig] = None):
    """
    Initializes the Engine.

    Args:
        config (AnalyzerConfig, optional): Analyzer settings. Defaults apply if None.
    """
    self.config = config or AnalyzerConfig()

  def run(self, project_root: Optional[Path] = None) -> AnalysisResult:
    """
    Classifies every route of the project.

    Args:
        project_root (Path, optional): Project directory (defaults to the
            current working directory).

    Returns:
        AnalysisResult: The ordered report and any warnings.

    Raises:
        SourceParseError: If a reachable source or data file cannot be parsed.
    """
    root = Path(project_root) if project_root is not None else Path.cwd()

    loader = SourceLoader(self.config)
    program = loader.load(root)
    warnings = list(loader.warnings)
    if program is None:
      return AnalysisResult(routes=[], warnings=warnings, entry_found=False)

    resolver = SymbolResolver(program)
    evaluator = StaticValueEvaluator(resolver, max_depth=self.config.max_depth)
    purity = HandlerPurityAnalyzer(resolver, evaluator, self.config)
    walker = RouterGraphWalker(program, resolver, purity, self.config)
    aggregator = ResultAggregator()

    handle = walker.find_root()
    if handle is None:
      message = f"No router instance found in {self.config.entry_file}"
      log_warning(message)
      warnings.append(message)
    else:
      for entry in walker.walk(handle):
        aggregator.add(entry)

    warnings.extend(walker.warnings)
    return AnalysisResult(routes=aggregator.results(), warnings=warnings, entry_found=True)
