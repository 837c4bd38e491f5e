"""
routecache Package.

A route staticness classifier for Hono applications: it reads the TypeScript
source of a server and decides, for every registered route, whether the
response is fixed at deploy time (STATIC, safe to cache at the CDN) or
depends on the request (DYNAMIC).

Usage
-----

Classifying a Project
^^^^^^^^^^^^^^^^^^^^^

.. code-block:: python

    import routecache
    for route in routecache.analyze_routes("./my-app"):
        print(route.method, route.path, route.type.value, route.reason or "")

Advanced Usage (Engine)
^^^^^^^^^^^^^^^^^^^^^^^

.. code-block:: python

    from routecache import AnalysisEngine, AnalyzerConfig

    config = AnalyzerConfig(entry_file="src/server.ts")
    result = AnalysisEngine(config).run("./my-app")

    for warning in result.warnings:
        print(warning)
"""

from pathlib import Path
from typing import List, Optional, Union

from routecache.analysis.loader import SourceParseError
from routecache.config import AnalyzerConfig
from routecache.core.engine import AnalysisEngine, AnalysisResult
from routecache.core.route_entry import RouteEntry
from routecache.enums import Verdict

__version__ = "0.0.1"


def analyze_routes(
  project_root: Optional[Union[str, Path]] = None,
  config: Optional[AnalyzerConfig] = None,
) -> List[RouteEntry]:
  """
  Classifies every route of a Hono project.

  This is a convenience wrapper around `AnalysisEngine`. A missing entry file
  yields an empty list (with a logged warning) rather than an error.

  Args:
      project_root (str | Path, optional): Project directory. Defaults to the
          current working directory.
      config (AnalyzerConfig, optional): Analyzer settings. Defaults apply if None.

  Returns:
      List[RouteEntry]: The routes, sorted by path.

  Raises:
      SourceParseError: If a reachable source or data file cannot be parsed.
  """
  root = Path(project_root) if project_root is not None else None
  return AnalysisEngine(config=config).run(root).routes


__all__ = [
  "AnalysisEngine",
  "AnalysisResult",
  "AnalyzerConfig",
  "RouteEntry",
  "SourceParseError",
  "Verdict",
  "analyze_routes",
  "__version__",
]
