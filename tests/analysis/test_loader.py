"""
Tests for the Source Loader.

Verifies:
1.  Missing entry files are a warning, not an error.
2.  Module resolution order (source before data, `.js` -> `.ts`, index files).
3.  Explicit JSON import attributes and tsconfig `paths` aliases.
4.  Each reachable file is parsed once per Program.
5.  Syntax errors are fatal (`SourceParseError`).
"""

import pytest

from routecache.analysis.loader import DataAsset, SourceLoader, SourceModule, SourceParseError
from routecache.config import AnalyzerConfig


def load(root):
  loader = SourceLoader(AnalyzerConfig())
  return loader.load(root), loader


def test_missing_entry_returns_none_with_warning(tmp_path):
  program, loader = load(tmp_path)

  assert program is None
  assert len(loader.warnings) == 1
  assert "Skipped: could not find server/index.ts" in loader.warnings[0]


def test_entry_and_imports_are_parsed(make_project):
  root = make_project(
    {
      "config.ts": "export const VERSION = '1';",
      "index.ts": "import { VERSION } from './config';\napp.get('/v', (c) => c.json({ v: VERSION }));",
    }
  )
  program, loader = load(root)

  assert program is not None
  assert program.entry.path == (root / "server" / "index.ts").resolve()
  assert (root / "server" / "config.ts").resolve() in program.modules
  assert loader.warnings == []


def test_external_packages_do_not_resolve(make_project):
  root = make_project("app.get('/', (c) => c.json({}));")
  program, _ = load(root)

  assert program.import_target(program.entry, "hono") is None
  assert len(program.modules) == 1


def test_source_file_wins_over_json_lookalike(make_project):
  root = make_project(
    {
      "data.json.ts": "export const badData = { time: Date.now() };",
      "index.ts": "import { badData } from './data.json';",
    }
  )
  program, _ = load(root)

  target = program.import_target(program.entry, "./data.json")
  assert isinstance(target, SourceModule)
  assert target.path.name == "data.json.ts"


def test_json_file_is_loaded_as_data(make_project):
  root = make_project(
    {
      "large.json": '{"version": "1.0", "items": [1, 2, 3]}',
      "index.ts": "import data from './large.json';",
    }
  )
  program, _ = load(root)

  target = program.import_target(program.entry, "./large.json")
  assert isinstance(target, DataAsset)
  assert target.value == {"version": "1.0", "items": [1, 2, 3]}


def test_json_import_attribute_forces_data(make_project):
  root = make_project(
    {
      "meta.json": '{"title": "Site"}',
      "meta.json.ts": "export default { title: Math.random() };",
      "index.ts": "import meta from './meta.json' with { type: 'json' };",
    }
  )
  program, _ = load(root)

  assert isinstance(program.import_target(program.entry, "./meta.json", as_data=True), DataAsset)
  assert isinstance(program.import_target(program.entry, "./meta.json"), SourceModule)


def test_js_specifier_maps_to_ts_sibling(make_project):
  root = make_project(
    {
      "util.ts": "export const A = 1;",
      "index.ts": "import { A } from './util.js';",
    }
  )
  program, _ = load(root)

  target = program.import_target(program.entry, "./util.js")
  assert isinstance(target, SourceModule)
  assert target.path.name == "util.ts"


def test_directory_index_resolution(make_project):
  root = make_project(
    {
      "routes/index.ts": "export const R = 1;",
      "index.ts": "import { R } from './routes';",
    }
  )
  program, _ = load(root)

  target = program.import_target(program.entry, "./routes")
  assert isinstance(target, SourceModule)
  assert target.path == (root / "server" / "routes" / "index.ts").resolve()


def test_tsconfig_path_alias(make_project):
  root = make_project(
    {
      "lib/config.ts": "export const VERSION = '2';",
      "index.ts": "import { VERSION } from '@/lib/config';",
    },
    tsconfig={"compilerOptions": {"baseUrl": ".", "paths": {"@/*": ["server/*"]}}},
  )
  program, _ = load(root)

  target = program.import_target(program.entry, "@/lib/config")
  assert isinstance(target, SourceModule)
  assert target.path.name == "config.ts"
  assert target.path in program.modules


def test_modules_are_parsed_once(make_project):
  root = make_project(
    {
      "shared.ts": "export const S = 1;",
      "a.ts": "import { S } from './shared';\nexport const A = S;",
      "index.ts": "import { S } from './shared';\nimport { A } from './a';",
    }
  )
  program, _ = load(root)

  a_module = program.import_target(program.entry, "./a")
  from_entry = program.import_target(program.entry, "./shared")
  from_a = program.import_target(a_module, "./shared")
  assert from_entry is from_a
  assert len(program.modules) == 3


def test_missing_tsconfig_uses_defaults(make_project):
  root = make_project("app.get('/', (c) => c.json({}));", tsconfig=None)
  program, loader = load(root)

  assert program is not None
  assert program.options.paths == {}
  assert any("Compiler configuration not found" in w for w in loader.warnings)


def test_tsconfig_with_comments_and_trailing_commas(make_project):
  raw = """{
    // editor settings
    "compilerOptions": {
      "baseUrl": "./server", /* aliases */
      "paths": { "~/*": ["*"], },
    },
  }"""
  root = make_project("app.get('/', (c) => c.json({}));", tsconfig=raw)
  program, loader = load(root)

  assert loader.warnings == []
  assert program.options.base_url == (root / "server").resolve()
  assert program.options.paths == {"~/*": ["*"]}


def test_malformed_tsconfig_is_a_warning(make_project):
  root = make_project("app.get('/', (c) => c.json({}));", tsconfig="{ not json")
  program, loader = load(root)

  assert program is not None
  assert any("Malformed compiler configuration" in w for w in loader.warnings)


def test_syntax_error_is_fatal(make_project):
  root = make_project("const broken = {;")

  with pytest.raises(SourceParseError) as excinfo:
    load(root)
  assert excinfo.value.path.name == "index.ts"


def test_invalid_json_asset_is_fatal(make_project):
  root = make_project(
    {
      "bad.json": "{ nope",
      "index.ts": "import bad from './bad.json';",
    }
  )

  with pytest.raises(SourceParseError):
    load(root)


def test_custom_entry_file(tmp_path):
  (tmp_path / "src").mkdir()
  (tmp_path / "src" / "main.ts").write_text("export const x = 1;", encoding="utf-8")

  loader = SourceLoader(AnalyzerConfig(entry_file="./src/main.ts"))
  program = loader.load(tmp_path)

  assert program is not None
  assert program.entry.path.name == "main.ts"
