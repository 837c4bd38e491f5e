"""
Runtime Configuration Store.

Holds the analyzer settings (`AnalyzerConfig`) and the subset of the
TypeScript compiler configuration honoured by module resolution
(`CompilerOptions`).

Settings are resolved in layers: model defaults, then the `[tool.routecache]`
table of the nearest `pyproject.toml`, then explicit overrides (CLI flags).
"""

import json
import logging
import re
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_FILE = "server/index.ts"
DEFAULT_TSCONFIG = "tsconfig.json"


class AnalyzerConfig(BaseModel):
  """
  Global configuration container for the route analyzer.
  """

  entry_file: str = Field(DEFAULT_ENTRY_FILE, description="Entry source file, relative to the project root.")
  tsconfig: str = Field(DEFAULT_TSCONFIG, description="Compiler configuration file, relative to the project root.")

  router_classes: List[str] = Field(
    default_factory=lambda: ["Hono"],
    description="Constructor names whose `new` expressions create a router.",
  )
  root_names: List[str] = Field(
    default_factory=lambda: ["app"],
    description="Conventional names of the root router binding.",
  )
  context_allow_list: List[str] = Field(
    default_factory=lambda: ["json", "text", "html", "body", "status", "header", "set", "render"],
    description="Context members that only build the response.",
  )
  response_methods: List[str] = Field(
    default_factory=lambda: ["json", "text", "html"],
    description="Context calls that produce the final response body.",
  )
  dynamic_globals: List[str] = Field(
    default_factory=lambda: [
      "Date",
      "Math",
      "performance",
      "crypto",
      "process",
      "Bun",
      "Deno",
      "globalThis",
      "window",
      "self",
      "fetch",
    ],
    description="Ambient globals whose use makes a handler request/time dependent.",
  )

  max_depth: int = Field(10, description="Recursion bound of the static value evaluator.")
  max_mount_depth: int = Field(32, description="Maximum nesting of mounted sub-routers.")

  @field_validator("entry_file", "tsconfig")
  @classmethod
  def normalize_relative(cls, v: str) -> str:
    """
    Normalizes path separators of project-relative paths.

    Args:
        v (str): Raw path string.

    Returns:
        str: Path using forward slashes, without a leading `./`.

    Raises:
        ValueError: If the path is empty.
    """
    v_clean = v.strip().replace("\\", "/")
    while v_clean.startswith("./"):
      v_clean = v_clean[2:]
    if not v_clean:
      raise ValueError("Path must not be empty.")
    return v_clean

  @field_validator("max_depth", "max_mount_depth")
  @classmethod
  def validate_depth(cls, v: int) -> int:
    """
    Rejects non-positive recursion bounds.

    Args:
        v (int): The configured depth.

    Returns:
        int: The unchanged depth.

    Raises:
        ValueError: If the depth is lower than 1.
    """
    if v < 1:
      raise ValueError(f"Depth bounds must be positive, got {v}.")
    return v

  @classmethod
  def load(
    cls,
    entry_file: Optional[str] = None,
    tsconfig: Optional[str] = None,
    max_depth: Optional[int] = None,
    search_path: Optional[Path] = None,
  ) -> "AnalyzerConfig":
    """
    Loads configuration from pyproject.toml and overrides with CLI arguments.

    Args:
        entry_file (Optional[str]): Override for the entry file.
        tsconfig (Optional[str]): Override for the compiler configuration file.
        max_depth (Optional[int]): Override for the evaluator recursion bound.
        search_path (Optional[Path]): Directory to start searching for TOML config.

    Returns:
        AnalyzerConfig: The fully resolved configuration object.
    """
    start_dir = search_path or Path.cwd()
    toml_config, _ = _load_toml_settings(start_dir)

    settings: Dict[str, Any] = dict(toml_config)
    if entry_file is not None:
      settings["entry_file"] = entry_file
    if tsconfig is not None:
      settings["tsconfig"] = tsconfig
    if max_depth is not None:
      settings["max_depth"] = max_depth

    try:
      return cls.model_validate(settings)
    except ValidationError as e:
      raise ValueError(f"Invalid routecache configuration: {e}")


class CompilerOptions(BaseModel):
  """
  The subset of `tsconfig.json` compiler options used for module resolution.
  """

  base_url: Optional[Path] = Field(None, description="Absolute directory for non-relative imports.")
  paths: Dict[str, List[str]] = Field(default_factory=dict, description="Alias patterns -> substitutions.")

  @classmethod
  def load(cls, tsconfig_path: Path) -> Tuple["CompilerOptions", Optional[str]]:
    """
    Reads compiler options best-effort.

    Missing or malformed files yield permissive defaults instead of failing.

    Args:
        tsconfig_path (Path): Location of the compiler configuration file.

    Returns:
        Tuple[CompilerOptions, Optional[str]]: The options and a warning
        message when defaults had to be substituted.
    """
    if not tsconfig_path.is_file():
      return cls(), f"Compiler configuration not found at {tsconfig_path}, using defaults."

    try:
      raw = json.loads(_strip_jsonc(tsconfig_path.read_text(encoding="utf-8")))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
      return cls(), f"Malformed compiler configuration {tsconfig_path.name} ({e}), using defaults."

    compiler = raw.get("compilerOptions") if isinstance(raw, dict) else None
    if not isinstance(compiler, dict):
      return cls(), None

    root = tsconfig_path.parent
    base_url = compiler.get("baseUrl")
    paths = compiler.get("paths")

    try:
      return (
        cls(
          base_url=(root / base_url).resolve() if isinstance(base_url, str) else None,
          paths=paths if isinstance(paths, dict) else {},
        ),
        None,
      )
    except ValidationError as e:
      return cls(), f"Unsupported compiler options in {tsconfig_path.name} ({e}), using defaults."


_JSONC_TOKEN = re.compile(r'"(?:\\.|[^"\\])*"|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def _strip_jsonc(text: str) -> str:
  """
  Removes comments and trailing commas accepted by the TypeScript compiler.

  Args:
      text (str): Raw tsconfig contents.

  Returns:
      str: Strict JSON text.
  """

  def keep_strings(match: "re.Match[str]") -> str:
    token = match.group(0)
    return token if token.startswith('"') else ""

  without_comments = _JSONC_TOKEN.sub(keep_strings, text)
  return _TRAILING_COMMA.sub(r"\1", without_comments)


def _load_toml_settings(start_path: Path) -> Tuple[Dict[str, Any], Optional[Path]]:
  """
  Recursively searches parents for 'pyproject.toml' and extracts config.

  Args:
      start_path (Path): Directory to start search from.

  Returns:
      Tuple[Dict, Optional[Path]]: The config dict and the directory definition was found in.
  """
  current = start_path.resolve()

  for parent in [current, *current.parents]:
    toml_path = parent / "pyproject.toml"
    if toml_path.exists() and toml_path.is_file():
      try:
        with open(toml_path, "rb") as f:
          data = tomllib.load(f)
      except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Ignoring unreadable %s: %s", toml_path, e)
        return {}, None

      tool_section = data.get("tool", {})
      return tool_section.get("routecache", {}), parent

  return {}, None
