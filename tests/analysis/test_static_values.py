"""
Tests for the Deep Static Value Evaluator.

Each case declares `const subject = <expression>;` and evaluates the
initializer of `subject`.
"""

import pytest

from routecache.analysis.loader import SourceLoader
from routecache.analysis.static_values import StaticValueEvaluator
from routecache.analysis.symbol_table import SymbolResolver
from routecache.utils.ts_nodes import text, walk


def subject_value(program):
  for node in walk(program.entry.root):
    if node.type == "variable_declarator" and text(node.child_by_field_name("name")) == "subject":
      return node.child_by_field_name("value")
  raise AssertionError("no subject declaration")


def evaluate(make_project, files, max_depth=10):
  root = make_project(files)
  program = SourceLoader().load(root)
  evaluator = StaticValueEvaluator(SymbolResolver(program), max_depth=max_depth)
  return evaluator.is_static(subject_value(program), program.entry)


@pytest.mark.parametrize(
  "expr",
  [
    '"hello"',
    "123",
    "true",
    "null",
    "undefined",
    "`plain`",
    "[1, 'two', false]",
    "{ a: 1, nested: { b: [null] } }",
    "('wrapped' as const)",
    "{ title: 'x' } satisfies Record<string, string>",
  ],
)
def test_literals_are_static(make_project, expr):
  assert evaluate(make_project, f"const subject = {expr};") is True


@pytest.mark.parametrize(
  "expr",
  [
    "`hello ${name}`",
    "1 + 2",
    "!true",
    "cond ? 1 : 2",
    "compute()",
    "new Map()",
    "[1, 2].map((x) => x * 2)",
    "{ method() { return 1; } }",
    "{ get value() { return 1; } }",
  ],
)
def test_non_literal_expressions_are_dynamic(make_project, expr):
  code = f"const name = 'user';\nconst cond = true;\nconst subject = {expr};"
  assert evaluate(make_project, code) is False


def test_const_binding_is_traced(make_project):
  assert evaluate(make_project, "const DATA = { version: 1 };\nconst subject = DATA;") is True


def test_let_binding_is_never_static(make_project):
  assert evaluate(make_project, "let data = { version: 1 };\nconst subject = data;") is False


def test_binding_holding_call_is_dynamic(make_project):
  assert evaluate(make_project, "const START = Date.now();\nconst subject = { since: START };") is False


def test_shorthand_members(make_project):
  assert evaluate(make_project, "const version = '1.0';\nconst subject = { version };") is True
  assert evaluate(make_project, "let version = '1.0';\nconst subject = { version };") is False


def test_spread_of_static_object(make_project):
  assert evaluate(make_project, "const base = { a: 1 };\nconst subject = { ...base, b: 2 };") is True
  assert evaluate(make_project, "const list = [1];\nconst subject = [...list, 2];") is True


def test_computed_keys(make_project):
  assert evaluate(make_project, "const key = 'k';\nconst subject = { [key]: 'value' };") is True
  dynamic = "const key = 'dynamic_key_' + Date.now();\nconst subject = { [key]: 'value' };"
  assert evaluate(make_project, dynamic) is False


def test_nested_member_navigation(make_project):
  code = "const CFG = { meta: { title: 'Title' }, items: ['a', 'b'] };\nconst subject = [CFG.meta.title, CFG.items[1], CFG['meta']];"
  assert evaluate(make_project, code) is True


def test_member_navigation_skips_dynamic_siblings(make_project):
  code = "const CFG = { stamp: Date.now(), name: 'n' };\nconst subject = CFG.name;"
  assert evaluate(make_project, code) is True

  code = "const CFG = { stamp: Date.now(), name: 'n' };\nconst subject = CFG.stamp;"
  assert evaluate(make_project, code) is False


def test_member_navigation_through_aliases(make_project):
  code = "const INNER = { deep: 'x' };\nconst OUTER = { inner: INNER };\nconst subject = OUTER.inner.deep;"
  assert evaluate(make_project, code) is True


def test_later_spread_can_override_field(make_project):
  code = "let other = { name: 'late' };\nconst CFG = { name: 'n', ...other };\nconst subject = CFG.name;"
  assert evaluate(make_project, code) is False


def test_destructured_const(make_project):
  assert evaluate(make_project, "const { a } = { a: 1 };\nconst subject = a;") is True
  assert evaluate(make_project, "const [, second] = [Date.now(), 'x'];\nconst subject = second;") is True
  assert evaluate(make_project, "let src = { a: 1 };\nconst { a } = src;\nconst subject = a;") is False


def test_destructured_default_must_be_static(make_project):
  assert evaluate(make_project, "const { a = Math.random() } = { a: 1 };\nconst subject = a;") is False


def test_cyclic_bindings_terminate(make_project):
  assert evaluate(make_project, "const a = b;\nconst b = a;\nconst subject = a;") is False


def test_depth_bound(make_project):
  code = "const subject = { a: { b: { c: { d: { e: 1 } } } } };"
  assert evaluate(make_project, code, max_depth=10) is True
  assert evaluate(make_project, code, max_depth=2) is False


def test_unresolvable_identifier(make_project):
  assert evaluate(make_project, "const subject = { v: SOME_GLOBAL };") is False


def test_data_asset_values(make_project):
  files = {
    "config.json": '{"meta": {"title": "My Site"}, "active": true}',
    "index.ts": "import config from './config.json';\nconst subject = { title: config.meta.title, isActive: config.active, ...config };",
  }
  assert evaluate(make_project, files) is True


def test_cross_file_constants(make_project):
  files = {
    "config.ts": "export const VERSION = '1.0.5';",
    "utils.ts": "export const TIME = Date.now();",
    "index.ts": "import { VERSION } from './config';\nconst subject = { v: VERSION };",
  }
  assert evaluate(make_project, files) is True

  files["index.ts"] = "import { TIME } from './utils';\nconst subject = { t: TIME };"
  assert evaluate(make_project, files) is False


def test_namespace_import_members(make_project):
  files = {
    "config.ts": "export const VERSION = '2';\nexport let counter = 0;",
    "index.ts": "import * as cfg from './config';\nconst subject = cfg.VERSION;",
  }
  assert evaluate(make_project, files) is True

  files["index.ts"] = "import * as cfg from './config';\nconst subject = cfg.counter;"
  assert evaluate(make_project, files) is False
