"""
Tests for the Declaration Index and Symbol Resolution.

Verifies:
1.  Mutability is decided by declaration form (const vs let/var/params).
2.  Block scoping and shadowing.
3.  Destructured bindings carry field paths.
4.  Imports are followed across modules (renames, defaults, re-exports,
    star exports, namespaces, data assets).
5.  Ambient globals and external packages are Unresolvable.
"""

from routecache.analysis.loader import SourceLoader
from routecache.analysis.symbol_table import REST, Binding, SymbolResolver, Unresolvable
from routecache.enums import BindingKind, Mutability
from routecache.utils.ts_nodes import text, walk


def build(make_project, files):
  root = make_project(files)
  program = SourceLoader().load(root)
  return program, SymbolResolver(program)


def find_identifier(module, name, occurrence=-1):
  """Returns an identifier use by name (the last one by default)."""
  matches = [
    node
    for node in walk(module.root)
    if node.type in ("identifier", "shorthand_property_identifier") and text(node) == name
  ]
  return matches[occurrence]


def resolve_last(program, resolver, name):
  return resolver.resolve(find_identifier(program.entry, name), program.entry)


def test_const_is_locked(make_project):
  program, resolver = build(make_project, "const A = 1;\nuse(A);")
  binding = resolve_last(program, resolver, "A")

  assert isinstance(binding, Binding)
  assert binding.kind == BindingKind.VARIABLE
  assert binding.mutability == Mutability.LOCKED
  assert text(binding.initializer) == "1"


def test_let_and_var_are_unlocked(make_project):
  program, resolver = build(make_project, "let B = 1;\nvar C = 2;\nuse(B, C);")

  assert resolve_last(program, resolver, "B").mutability == Mutability.UNLOCKED
  assert resolve_last(program, resolver, "C").mutability == Mutability.UNLOCKED


def test_function_declaration_and_parameters(make_project):
  program, resolver = build(make_project, "function handler(c) { return c; }\nuse(handler);")

  fn = resolve_last(program, resolver, "handler")
  assert fn.kind == BindingKind.FUNCTION
  assert fn.mutability == Mutability.UNLOCKED

  param = resolve_last(program, resolver, "c")
  assert param.kind == BindingKind.PARAMETER
  assert param.mutability == Mutability.UNLOCKED


def test_block_scope_shadowing(make_project):
  code = """
const X = "outer";
function f() {
  {
    const X = "inner";
    use(X);
  }
  use(X);
}
"""
  program, resolver = build(make_project, code)
  inner_use = find_identifier(program.entry, "X", occurrence=2)
  outer_use = find_identifier(program.entry, "X", occurrence=3)

  assert text(resolver.resolve(inner_use, program.entry).initializer) == '"inner"'
  assert text(resolver.resolve(outer_use, program.entry).initializer) == '"outer"'


def test_var_is_function_scoped(make_project):
  code = """
function f() {
  if (true) { var hoisted = 1; }
  use(hoisted);
}
"""
  program, resolver = build(make_project, code)
  binding = resolve_last(program, resolver, "hoisted")

  assert isinstance(binding, Binding)
  assert text(binding.initializer) == "1"


def test_for_of_variable_shadows_outer_const(make_project):
  code = """
const item = "fixed";
for (const item of items) {
  use(item);
}
use(item);
"""
  program, resolver = build(make_project, code)
  loop_decl = find_identifier(program.entry, "item", occurrence=1)
  loop_use = resolver.resolve(find_identifier(program.entry, "item", occurrence=2), program.entry)
  outer_use = resolver.resolve(find_identifier(program.entry, "item", occurrence=3), program.entry)

  assert loop_use.kind == BindingKind.PARAMETER
  assert loop_use.mutability == Mutability.UNLOCKED
  assert loop_use.declaration.start_byte == loop_decl.start_byte
  assert text(outer_use.initializer) == '"fixed"'


def test_for_in_and_destructured_loop_variables(make_project):
  code = "for (let key in obj) { use(key); }\nfor (const [name, value] of pairs) { use(name, value); }"
  program, resolver = build(make_project, code)

  key = resolve_last(program, resolver, "key")
  value = resolve_last(program, resolver, "value")

  assert key.kind == BindingKind.PARAMETER
  assert value.kind == BindingKind.PARAMETER
  assert value.field_path == (1,)
  assert not value.is_locked


def test_destructuring_field_paths(make_project):
  code = "const { a, b: [first, , third], c: { d = 5 }, ...others } = SOURCE;\nuse(a, first, third, d, others);"
  program, resolver = build(make_project, code)

  assert resolve_last(program, resolver, "a").field_path == ("a",)
  assert resolve_last(program, resolver, "first").field_path == ("b", 0)
  assert resolve_last(program, resolver, "third").field_path == ("b", 2)

  d = resolve_last(program, resolver, "d")
  assert d.field_path == ("c", "d")
  assert text(d.default) == "5"

  others = resolve_last(program, resolver, "others")
  assert others.field_path == (REST,)
  assert text(others.initializer) == "SOURCE"


def test_ambient_global_is_unresolvable(make_project):
  program, resolver = build(make_project, "use(Date.now());")
  result = resolve_last(program, resolver, "Date")

  assert isinstance(result, Unresolvable)
  assert "Date" in result.reason


def test_external_package_is_unresolvable(make_project):
  program, resolver = build(make_project, "import { cors } from 'hono/cors';\nuse(cors);")
  result = resolve_last(program, resolver, "cors")

  assert isinstance(result, Unresolvable)
  assert "External module 'hono/cors'" in result.reason


def test_renamed_import_follows_to_declaration(make_project):
  program, resolver = build(
    make_project,
    {
      "config.ts": "export const VERSION = '1.0.5';",
      "index.ts": "import { VERSION as V } from './config';\nuse(V);",
    },
  )
  binding = resolve_last(program, resolver, "V")

  assert binding.name == "VERSION"
  assert binding.module.path.name == "config.ts"
  assert binding.mutability == Mutability.LOCKED


def test_default_export_identifier(make_project):
  program, resolver = build(
    make_project,
    {
      "settings.ts": "const settings = { a: 1 };\nexport default settings;",
      "index.ts": "import cfg from './settings';\nuse(cfg);",
    },
  )
  binding = resolve_last(program, resolver, "cfg")

  assert binding.name == "settings"
  assert binding.kind == BindingKind.VARIABLE


def test_anonymous_default_export(make_project):
  program, resolver = build(
    make_project,
    {
      "settings.ts": "export default { a: 1 };",
      "index.ts": "import cfg from './settings';\nuse(cfg);",
    },
  )
  binding = resolve_last(program, resolver, "cfg")

  assert binding.kind == BindingKind.DEFAULT_EXPORT
  assert binding.is_locked
  assert binding.initializer.type == "object"


def test_reexport_chain(make_project):
  program, resolver = build(
    make_project,
    {
      "base.ts": "export const TOKEN = 'x';",
      "middle.ts": "export { TOKEN as KEY } from './base';",
      "barrel.ts": "export * from './middle';",
      "index.ts": "import { KEY } from './barrel';\nuse(KEY);",
    },
  )
  binding = resolve_last(program, resolver, "KEY")

  assert isinstance(binding, Binding)
  assert binding.name == "TOKEN"
  assert binding.module.path.name == "base.ts"


def test_missing_export_is_unresolvable(make_project):
  program, resolver = build(
    make_project,
    {
      "config.ts": "export const A = 1;",
      "index.ts": "import { B } from './config';\nuse(B);",
    },
  )
  result = resolve_last(program, resolver, "B")

  assert isinstance(result, Unresolvable)
  assert "not exported" in result.reason


def test_namespace_member_resolution(make_project):
  program, resolver = build(
    make_project,
    {
      "config.ts": "export const VERSION = '3';",
      "index.ts": "import * as cfg from './config';\nuse(cfg.VERSION);",
    },
  )
  namespace = resolve_last(program, resolver, "cfg")
  assert namespace.is_namespace

  member = resolver.resolve_member(namespace, "VERSION")
  assert isinstance(member, Binding)
  assert member.name == "VERSION"


def test_json_import_is_data_binding(make_project):
  program, resolver = build(
    make_project,
    {
      "config.json": '{"meta": {"title": "My Site"}}',
      "index.ts": "import config from './config.json';\nimport { meta } from './config.json';\nuse(config, meta);",
    },
  )
  whole = resolve_last(program, resolver, "config")
  field = resolve_last(program, resolver, "meta")

  assert whole.kind == BindingKind.DATA
  assert whole.import_source.endswith("config.json")
  assert field.kind == BindingKind.DATA
  assert field.name == "meta"
  assert field.is_locked


def test_resolution_is_memoized(make_project):
  program, resolver = build(make_project, "const A = 1;\nuse(A);")
  node = find_identifier(program.entry, "A")

  assert resolver.resolve(node, program.entry) is resolver.resolve(node, program.entry)


def test_module_index_records_default_export(make_project):
  program, resolver = build(make_project, "app.get('/', (c) => c.json({}));")
  index = resolver.index(program.entry)

  assert index.exports["default"].local_name == "app"
