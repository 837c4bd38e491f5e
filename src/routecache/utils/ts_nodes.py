"""
Helpers for navigating tree-sitter TypeScript syntax trees.

Tree-sitter nodes are plain positional records: the same syntax node is
materialised as a fresh Python object on every access. `node_key` gives a
stable identity usable in dictionaries and sets within one tree.
"""

import codecs
from typing import Callable, Iterator, List, Optional, Tuple

from tree_sitter import Node

NodeKey = Tuple[int, int, str]

FUNCTION_TYPES = frozenset(
  {
    "arrow_function",
    "function",
    "function_expression",
    "function_declaration",
    "generator_function",
    "generator_function_declaration",
    "method_definition",
  }
)

# Expression wrappers that never change the runtime value.
TRANSPARENT_TYPES = frozenset(
  {
    "parenthesized_expression",
    "as_expression",
    "satisfies_expression",
    "non_null_expression",
    "type_assertion",
  }
)

LITERAL_TYPES = frozenset({"string", "number", "true", "false", "null", "undefined"})


def node_key(node: Node) -> NodeKey:
  """
  Stable identity of a node inside its tree.

  Args:
      node: Any syntax node.

  Returns:
      NodeKey: (start byte, end byte, node type).
  """
  return (node.start_byte, node.end_byte, node.type)


def same_node(a: Optional[Node], b: Optional[Node]) -> bool:
  """True if both nodes denote the same syntax element."""
  if a is None or b is None:
    return False
  return node_key(a) == node_key(b)


def text(node: Optional[Node]) -> str:
  """Source text of a node (empty for None)."""
  if node is None or node.text is None:
    return ""
  return node.text.decode("utf-8", errors="replace")


def named(node: Node) -> List[Node]:
  """Named children, comments excluded."""
  return [child for child in node.named_children if child.type != "comment"]


def first_named(node: Node) -> Optional[Node]:
  """First named, non-comment child."""
  children = named(node)
  return children[0] if children else None


def unwrap(node: Node) -> Node:
  """
  Strips parentheses and TypeScript-only assertions around an expression.

  `(x as const)!` and `<T>x` evaluate to `x` at runtime.

  Args:
      node: Expression node.

  Returns:
      Node: The innermost wrapped expression.
  """
  current = node
  while current.type in TRANSPARENT_TYPES:
    children = named(current)
    if not children:
      break
    # type_assertion is `<T>expr`: the expression is last.
    current = children[-1] if current.type == "type_assertion" else children[0]
  return current


def unwrap_await(node: Node) -> Node:
  """Strips `await` and transparent wrappers in any order."""
  current = unwrap(node)
  while current.type == "await_expression":
    inner = first_named(current)
    if inner is None:
      break
    current = unwrap(inner)
  return current


def call_arguments(call: Node) -> List[Node]:
  """Argument expressions of a call or `new` expression."""
  args = call.child_by_field_name("arguments")
  if args is None:
    return []
  return named(args)


def member_property(member: Node) -> Optional[str]:
  """
  Property name of a static member access.

  Handles `a.b`, `a?.b`, `a["b"]` and `a[0]`.

  Args:
      member: A member_expression or subscript_expression node.

  Returns:
      Optional[str]: The property name, or None for computed access.
  """
  if member.type == "member_expression":
    prop = member.child_by_field_name("property")
    return text(prop) if prop is not None else None
  if member.type == "subscript_expression":
    index = member.child_by_field_name("index")
    if index is None:
      return None
    index = unwrap(index)
    if index.type == "number":
      return text(index)
    return string_value(index)
  return None


def member_chain(node: Node) -> Optional[Tuple[Node, List[str]]]:
  """
  Splits `a.b["c"][0]` into its base expression and property path.

  Args:
      node: A member or subscript expression.

  Returns:
      Optional[Tuple[Node, List[str]]]: Base node and property names, outermost
      last. None if any step is a computed access.
  """
  path: List[str] = []
  current = unwrap(node)
  while current.type in ("member_expression", "subscript_expression"):
    prop = member_property(current)
    if prop is None:
      return None
    path.append(prop)
    obj = current.child_by_field_name("object")
    if obj is None:
      return None
    current = unwrap(obj)
  path.reverse()
  return current, path


def string_value(node: Optional[Node]) -> Optional[str]:
  """
  Literal value of a string or substitution-free template literal.

  Args:
      node: Candidate literal node.

  Returns:
      Optional[str]: The decoded string, or None if the node is not a
      constant string.
  """
  if node is None:
    return None
  node = unwrap(node)
  if node.type not in ("string", "template_string"):
    return None

  parts: List[str] = []
  for child in node.named_children:
    if child.type == "string_fragment":
      parts.append(text(child))
    elif child.type == "escape_sequence":
      parts.append(_decode_escape(text(child)))
    elif child.type == "template_substitution":
      return None
  return "".join(parts)


def _decode_escape(seq: str) -> str:
  try:
    return codecs.decode(seq, "unicode_escape")
  except UnicodeDecodeError:
    return seq[1:]


def property_key(key: Node) -> Optional[str]:
  """
  Name of a non-computed object literal / pattern key.

  Args:
      key: The `key` field of a pair or pair_pattern.

  Returns:
      Optional[str]: The key, or None for computed keys.
  """
  if key.type in ("property_identifier", "private_property_identifier"):
    return text(key)
  if key.type == "string":
    return string_value(key)
  if key.type == "number":
    return text(key)
  return None


def is_function(node: Node) -> bool:
  """True for any function-like node."""
  return node.type in FUNCTION_TYPES


def function_parameters(func: Node) -> List[Node]:
  """
  Parameter patterns of a function-like node.

  Handles the bare arrow parameter (`c => ...`), TypeScript
  `required_parameter` / `optional_parameter` wrappers and defaults.

  Args:
      func: Function-like node.

  Returns:
      List[Node]: Pattern nodes (identifier, object_pattern, ...).
  """
  single = func.child_by_field_name("parameter")
  if single is not None:
    return [single]

  params = func.child_by_field_name("parameters")
  if params is None:
    return []

  patterns: List[Node] = []
  for param in named(params):
    if param.type in ("required_parameter", "optional_parameter"):
      pattern = param.child_by_field_name("pattern")
      if pattern is not None:
        patterns.append(pattern)
    elif param.type == "assignment_pattern":
      left = param.child_by_field_name("left")
      if left is not None:
        patterns.append(left)
    else:
      patterns.append(param)
  return patterns


def walk(node: Node, descend: Optional[Callable[[Node], bool]] = None) -> Iterator[Node]:
  """
  Pre-order traversal in source order.

  Args:
      node: Root of the traversal (yielded first).
      descend: Predicate deciding whether the children of a (non-root) node
        are visited. Defaults to always.

  Yields:
      Node: Every visited node.
  """
  stack = [node]
  while stack:
    current = stack.pop()
    yield current
    if current is not node and descend is not None and not descend(current):
      continue
    stack.extend(reversed(current.children))


def outside_functions(node: Node) -> bool:
  """`walk` predicate that stops at nested function boundaries."""
  return not is_function(node)


def first_error(node: Node) -> Optional[Node]:
  """First ERROR or missing node in source order, if any."""
  for current in walk(node):
    if current.type == "ERROR" or current.is_missing:
      return current
  return None
