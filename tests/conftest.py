"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- Project factory writing small TypeScript servers to a temp directory.
- Console isolation so tests capturing output do not leak their backend.
"""

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import pytest

# Add src to path so we can import 'routecache' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from routecache.utils.console import reset_console  # noqa: E402

HONO_HEADER = """
import { Hono } from 'hono';
const app = new Hono();
"""

HONO_FOOTER = """
export default app;
"""

DEFAULT_TSCONFIG = {"compilerOptions": {"target": "ESNext", "module": "ESNext", "moduleResolution": "bundler"}}


def wrap_app(body: str) -> str:
  """Wraps route registrations in the standard `app` boilerplate."""
  return HONO_HEADER + body + HONO_FOOTER


ProjectFactory = Callable[..., Path]


@pytest.fixture
def make_project(tmp_path: Path) -> ProjectFactory:
  """
  Factory writing a project under `tmp_path`.

  `files` is either the body of `server/index.ts` (wrapped with an `app`
  instance and its default export) or a mapping of paths relative to
  `server/` to contents. An `index.ts` entry in the mapping is wrapped the
  same way unless it already imports from `hono`.

  `tsconfig` may be a dict (serialized), a raw string, or None to omit it.
  """

  def _make(
    files: Union[str, Dict[str, str]],
    tsconfig: Optional[Union[Dict[str, Any], str]] = DEFAULT_TSCONFIG,
  ) -> Path:
    server = tmp_path / "server"
    server.mkdir(parents=True, exist_ok=True)

    if tsconfig is not None:
      raw = tsconfig if isinstance(tsconfig, str) else json.dumps(tsconfig)
      (tmp_path / "tsconfig.json").write_text(raw, encoding="utf-8")

    if isinstance(files, str):
      files = {"index.ts": files}

    for name, content in files.items():
      target = server / name
      target.parent.mkdir(parents=True, exist_ok=True)
      if name == "index.ts" and "from 'hono'" not in content:
        content = wrap_app(content)
      target.write_text(content, encoding="utf-8")

    return tmp_path

  return _make


@pytest.fixture(autouse=True)
def isolate_console():
  """Ensures console is reset to stdout after every test."""
  yield
  reset_console()
