"""
Source Loader.

Locates the entry file of a project, parses it with the tree-sitter TypeScript
grammar and transitively parses every file it statically imports.

The loaded `Program` is the single parse/resolution context of one analysis
run: each reachable file is parsed once and reused for every import that
points at it. Structured-data imports (JSON) are loaded as `DataAsset`
values instead of being parsed as code.

Module resolution order for a specifier:

1.  Bare specifiers are matched against `compilerOptions.paths` and
    `compilerOptions.baseUrl`; anything else is an external package.
2.  An import declaring `with { type: "json" }` loads the exact file as data.
3.  Source files win over data files: the exact path (when it already has a
    source extension), its `.ts` sibling for `.js`-style specifiers, then the
    specifier with each source extension appended. A specifier such as
    `./data.json` therefore resolves to `data.json.ts` when that exists.
4.  The exact `.json` file, as a data asset.
5.  Directory index files.
"""

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Node, Parser, Tree

from routecache.config import AnalyzerConfig, CompilerOptions
from routecache.utils.ts_nodes import first_error, named, string_value, text, walk

logger = logging.getLogger(__name__)

TS_LANGUAGE = Language(tstypescript.language_typescript())
TSX_LANGUAGE = Language(tstypescript.language_tsx())

SOURCE_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")
_TS_SIBLINGS = {
  ".js": (".ts", ".tsx"),
  ".jsx": (".tsx",),
  ".mjs": (".mts",),
  ".cjs": (".cts",),
}
_JSX_EXTENSIONS = (".tsx", ".jsx")


class SourceParseError(ValueError):
  """
  Raised when a reachable source or data file cannot be parsed.

  This is the only fatal condition of an analysis run.
  """

  def __init__(self, path: Path, detail: str):
    super().__init__(f"Failed to parse {path}: {detail}")
    self.path = path
    self.detail = detail


@dataclass
class SourceModule:
  """
  A parsed program source file.
  """

  path: Path
  source: bytes
  tree: Tree

  @property
  def root(self) -> Node:
    """The `program` node."""
    return self.tree.root_node


@dataclass
class DataAsset:
  """
  A structured-data file imported as a literal value.
  """

  path: Path
  value: Any


ImportTarget = Union[SourceModule, DataAsset]


@dataclass
class ImportRequest:
  """
  A static import or re-export found in a module.
  """

  specifier: str
  as_data: bool


@dataclass
class Program:
  """
  All files reachable from the entry file, parsed once.

  Attributes:
      project_root (Path): The analysed project directory.
      entry (SourceModule): The entry module.
      options (CompilerOptions): Module resolution options.
      modules (Dict[Path, SourceModule]): Parsed source files in load order.
      assets (Dict[Path, DataAsset]): Loaded data files.
  """

  project_root: Path
  options: CompilerOptions
  entry: Optional[SourceModule] = None
  modules: Dict[Path, SourceModule] = field(default_factory=dict)
  assets: Dict[Path, DataAsset] = field(default_factory=dict)
  _parsers: Dict[str, Parser] = field(default_factory=dict, repr=False)
  _targets: Dict[Tuple[Path, str, bool], Optional[ImportTarget]] = field(default_factory=dict, repr=False)

  def load_source(self, path: Path) -> SourceModule:
    """
    Parses a source file, reusing an earlier parse of the same file.

    Args:
        path: Absolute path of the file.

    Returns:
        SourceModule: The parsed module.

    Raises:
        SourceParseError: If the file cannot be read or has syntax errors.
    """
    path = path.resolve()
    if path in self.modules:
      return self.modules[path]

    try:
      source = path.read_bytes()
    except OSError as e:
      raise SourceParseError(path, str(e)) from e

    tree = self._parser_for(path).parse(source)
    if tree.root_node.has_error:
      bad = first_error(tree.root_node)
      line = bad.start_point[0] + 1 if bad is not None else 0
      raise SourceParseError(path, f"syntax error near line {line}")

    module = SourceModule(path=path, source=source, tree=tree)
    self.modules[path] = module
    logger.debug("Parsed %s", path)
    return module

  def load_asset(self, path: Path) -> DataAsset:
    """
    Loads a JSON data file, reusing an earlier load of the same file.

    Args:
        path: Absolute path of the file.

    Returns:
        DataAsset: The parsed content.

    Raises:
        SourceParseError: If the file is not valid JSON.
    """
    path = path.resolve()
    if path in self.assets:
      return self.assets[path]

    try:
      value = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
      raise SourceParseError(path, str(e)) from e

    asset = DataAsset(path=path, value=value)
    self.assets[path] = asset
    return asset

  def import_target(self, importer: SourceModule, specifier: str, as_data: bool = False) -> Optional[ImportTarget]:
    """
    Resolves and loads the file an import specifier points at.

    Args:
        importer: Module containing the import.
        specifier: The module specifier string.
        as_data: True if the import declares the JSON import attribute.

    Returns:
        Optional[ImportTarget]: The module or asset, None for external or
        missing modules.
    """
    cache_key = (importer.path, specifier, as_data)
    if cache_key in self._targets:
      return self._targets[cache_key]

    target: Optional[ImportTarget] = None
    resolved = self.resolve_specifier(importer.path, specifier, as_data)
    if resolved is not None:
      path, is_data = resolved
      target = self.load_asset(path) if is_data else self.load_source(path)

    self._targets[cache_key] = target
    return target

  def resolve_specifier(self, importer: Path, specifier: str, as_data: bool = False) -> Optional[Tuple[Path, bool]]:
    """
    Maps a specifier to a file path.

    Args:
        importer: Path of the importing file.
        specifier: The module specifier string.
        as_data: Load the exact file as data.

    Returns:
        Optional[Tuple[Path, bool]]: The file and whether it is a data asset.
    """
    for base in self._candidate_bases(importer, specifier):
      found = _probe(base, as_data)
      if found is not None:
        return found
    return None

  def _candidate_bases(self, importer: Path, specifier: str) -> Iterator[Path]:
    if specifier.startswith(("./", "../")) or specifier in (".", ".."):
      yield importer.parent / specifier
      return
    if specifier.startswith("/"):
      yield Path(specifier)
      return

    alias_root = self.options.base_url or self.project_root
    for pattern, substitutions in self.options.paths.items():
      star = _match_alias(pattern, specifier)
      if star is None:
        continue
      for sub in substitutions:
        yield alias_root / sub.replace("*", star, 1)

    if self.options.base_url is not None:
      yield self.options.base_url / specifier

  def _parser_for(self, path: Path) -> Parser:
    lang_key = "tsx" if path.suffix in _JSX_EXTENSIONS else "typescript"
    if lang_key not in self._parsers:
      self._parsers[lang_key] = Parser(TSX_LANGUAGE if lang_key == "tsx" else TS_LANGUAGE)
    return self._parsers[lang_key]


def _match_alias(pattern: str, specifier: str) -> Optional[str]:
  """
  Matches a tsconfig `paths` pattern.

  Returns:
      Optional[str]: The text captured by `*` ("" for exact patterns), or
      None when the pattern does not apply.
  """
  if "*" not in pattern:
    return "" if pattern == specifier else None
  prefix, suffix = pattern.split("*", 1)
  if len(specifier) < len(prefix) + len(suffix):
    return None
  if specifier.startswith(prefix) and specifier.endswith(suffix):
    return specifier[len(prefix) : len(specifier) - len(suffix)]
  return None


def _probe(base: Path, as_data: bool) -> Optional[Tuple[Path, bool]]:
  if as_data:
    return (base, True) if base.is_file() else None

  suffix = base.suffix
  if suffix in SOURCE_EXTENSIONS and base.is_file():
    return base, False

  for ext in _TS_SIBLINGS.get(suffix, ()):
    sibling = base.with_suffix(ext)
    if sibling.is_file():
      return sibling, False

  for ext in SOURCE_EXTENSIONS:
    candidate = base.parent / (base.name + ext)
    if candidate.is_file():
      return candidate, False

  if suffix == ".json" and base.is_file():
    return base, True

  if base.is_dir():
    for ext in SOURCE_EXTENSIONS:
      index = base / f"index{ext}"
      if index.is_file():
        return index, False

  return None


def import_requests(module: SourceModule) -> List[ImportRequest]:
  """
  Lists the static imports and re-exports of a module.

  Dynamic `import()` calls are not included.

  Args:
      module: The parsed module.

  Returns:
      List[ImportRequest]: One entry per import / export-from statement.
  """
  requests: List[ImportRequest] = []
  for stmt in named(module.root):
    if stmt.type not in ("import_statement", "export_statement"):
      continue
    source = stmt.child_by_field_name("source")
    specifier = string_value(source)
    if specifier is None:
      continue
    requests.append(ImportRequest(specifier=specifier, as_data=declares_json_import(stmt)))
  return requests


def declares_json_import(stmt: Node) -> bool:
  """
  True if an import carries `with { type: "json" }` (or the older `assert`).

  Args:
      stmt: An import or export statement.
  """
  for child in named(stmt):
    if not child.type.startswith("import_attribute") and child.type != "import_assertion":
      continue
    for node in walk(child):
      if node.type != "pair":
        continue
      key = node.child_by_field_name("key")
      value = node.child_by_field_name("value")
      if key is not None and text(key).strip("\"'") == "type" and string_value(value) == "json":
        return True
  return False


class SourceLoader:
  """
  Builds the `Program` of one analysis run.

  Attributes:
      config (AnalyzerConfig): Analyzer settings (entry file, tsconfig name).
      warnings (List[str]): Non-fatal conditions met while loading.
  """

  def __init__(self, config: Optional[AnalyzerConfig] = None):
    self.config = config or AnalyzerConfig()
    self.warnings: List[str] = []

  def load(self, project_root: Path) -> Optional[Program]:
    """
    Parses the entry file and everything it statically imports.

    Args:
        project_root: The project directory.

    Returns:
        Optional[Program]: The loaded program, or None when the entry file
        does not exist.

    Raises:
        SourceParseError: If a reachable file has syntax errors.
    """
    root = project_root.resolve()
    entry_path = root / self.config.entry_file

    if not entry_path.is_file():
      self._warn(f"Skipped: could not find {self.config.entry_file} at {entry_path}")
      return None

    options, problem = CompilerOptions.load(root / self.config.tsconfig)
    if problem:
      self._warn(problem)

    program = Program(project_root=root, options=options)
    program.entry = program.load_source(entry_path)

    queue = deque([program.entry])
    visited = {program.entry.path}
    while queue:
      module = queue.popleft()
      for request in import_requests(module):
        target = program.import_target(module, request.specifier, request.as_data)
        if isinstance(target, SourceModule) and target.path not in visited:
          visited.add(target.path)
          queue.append(target)

    logger.debug("Loaded %d modules and %d data assets", len(program.modules), len(program.assets))
    return program

  def _warn(self, message: str) -> None:
    logger.warning(message)
    self.warnings.append(message)
