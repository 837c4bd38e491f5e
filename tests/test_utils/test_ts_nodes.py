"""
Tests for the tree-sitter navigation helpers.
"""

import pytest
from tree_sitter import Parser

from routecache.analysis.loader import TS_LANGUAGE
from routecache.utils.ts_nodes import (
  first_error,
  function_parameters,
  member_chain,
  member_property,
  node_key,
  outside_functions,
  property_key,
  same_node,
  string_value,
  text,
  unwrap,
  unwrap_await,
  walk,
)


def parse(code: str):
  return Parser(TS_LANGUAGE).parse(code.encode("utf-8")).root_node


def value_of(code: str):
  """Initializer of the first declarator in `code`."""
  for node in walk(parse(code)):
    if node.type == "variable_declarator":
      return node.child_by_field_name("value")
  raise AssertionError("no declarator")


def first_of(code: str, node_type: str):
  for node in walk(parse(code)):
    if node.type == node_type:
      return node
  raise AssertionError(f"no {node_type}")


@pytest.mark.parametrize(
  "code, expected",
  [
    ("const x = 'single';", "single"),
    ('const x = "double";', "double"),
    ("const x = `template`;", "template"),
    ("const x = 'esc\\n';", "esc\n"),
    ("const x = '';", ""),
    ("const x = ('wrapped' as const);", "wrapped"),
  ],
)
def test_string_value(code, expected):
  assert string_value(value_of(code)) == expected


@pytest.mark.parametrize("code", ["const x = `a${b}`;", "const x = 42;", "const x = name;"])
def test_string_value_rejects_non_constant(code):
  assert string_value(value_of(code)) is None


def test_unwrap_strips_typescript_wrappers():
  assert text(unwrap(value_of("const x = ((cfg as Config)!);"))) == "cfg"
  assert text(unwrap(value_of("const x = <Config>cfg;"))) == "cfg"
  assert text(unwrap(value_of("const x = cfg satisfies Config;"))) == "cfg"


def test_unwrap_await():
  node = first_of("async function f() { return await (await load()); }", "return_statement")
  assert text(unwrap_await(node.named_children[0])) == "load()"


def test_member_chain():
  base, path = member_chain(value_of("const x = CFG.meta['title'][0];"))
  assert text(base) == "CFG"
  assert path == ["meta", "title", "0"]


def test_member_chain_rejects_computed_access():
  assert member_chain(value_of("const x = CFG[key].title;")) is None


def test_member_property():
  assert member_property(value_of("const x = a?.b;")) == "b"
  assert member_property(value_of("const x = a['b'];")) == "b"
  assert member_property(value_of("const x = a[k];")) is None


def test_property_key():
  obj = value_of("const x = { plain: 1, 'quoted': 2, 3: 3, [computed]: 4 };")
  keys = [property_key(pair.child_by_field_name("key")) for pair in obj.named_children]
  assert keys == ["plain", "quoted", "3", None]


@pytest.mark.parametrize(
  "code, expected",
  [
    ("const f = c => c;", ["c"]),
    ("const f = (c, next) => c;", ["c", "next"]),
    ("const f = (c: Context, next?: Next) => c;", ["c", "next"]),
    ("const f = (c = fallback) => c;", ["c"]),
    ("function f({ json }) { return json; }", ["{ json }"]),
    ("const f = () => 1;", []),
  ],
)
def test_function_parameters(code, expected):
  func = next(node for node in walk(parse(code)) if node.type in ("arrow_function", "function_declaration"))
  assert [text(p) for p in function_parameters(func)] == expected


def test_walk_is_pre_order_source_order():
  names = [text(node) for node in walk(parse("a; b; c;")) if node.type == "identifier"]
  assert names == ["a", "b", "c"]


def test_walk_outside_functions():
  root = parse("function f() { return 1; inner(() => { return 2; }); }")
  func = first_of("function f() { return 1; inner(() => { return 2; }); }", "function_declaration")
  body = func.child_by_field_name("body")
  returns = [node for node in walk(body, descend=outside_functions) if node.type == "return_statement"]

  assert [text(r) for r in returns] == ["return 1;"]
  assert len([n for n in walk(root) if n.type == "return_statement"]) == 2


def test_node_identity():
  root = parse("const x = 1;")
  first = root.named_children[0]
  again = root.named_children[0]

  assert same_node(first, again)
  assert node_key(first) == node_key(again)
  assert not same_node(first, None)


def test_first_error():
  assert first_error(parse("const ok = 1;")) is None
  assert first_error(parse("const broken = {;")) is not None
