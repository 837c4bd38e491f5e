"""
Deep Static Value Evaluator.

Proves that an expression is built only from literals, literal containers and
single-assignment bindings whose initializers are themselves static. Values
pulled out of imported data assets are static by construction.

Member accesses (`CFG.meta.title`, `items[0]`) are resolved by navigating the
field path into the initializer of the base binding. When navigation cannot
continue (a spread, a computed key, a call) the node reached so far must be
static as a whole.
"""

import logging
from typing import List, Optional, Union

from tree_sitter import Node

from routecache.analysis.loader import SourceModule
from routecache.analysis.symbol_table import REST, Binding, FieldPath, SymbolResolver, Unresolvable
from routecache.enums import BindingKind
from routecache.utils.ts_nodes import (
  LITERAL_TYPES,
  first_named,
  member_chain,
  named,
  property_key,
  string_value,
  text,
  unwrap,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


class StaticValueEvaluator:
  """
  Decides whether expressions are fully determined at deploy time.

  Attributes:
      resolver (SymbolResolver): Shared declaration index.
      max_depth (int): Recursion bound. Deeper structures are not static.
  """

  def __init__(self, resolver: SymbolResolver, max_depth: int = DEFAULT_MAX_DEPTH):
    self.resolver = resolver
    self.max_depth = max_depth

  def is_static(self, node: Node, module: SourceModule, depth: int = 0) -> bool:
    """
    Checks whether an expression is static.

    Args:
        node: The expression.
        module: Module containing the expression.
        depth: Current recursion depth.

    Returns:
        bool: True only if the value is provably constant.
    """
    if depth > self.max_depth:
      logger.debug("Depth bound reached at '%s'", text(node)[:40])
      return False

    node = unwrap(node)
    kind = node.type

    if kind in LITERAL_TYPES:
      return True
    if kind == "template_string":
      return string_value(node) is not None
    if kind == "identifier":
      if text(node) == "undefined":
        return True
      return self._is_resolution_static(self.resolver.resolve(node, module), depth + 1)
    if kind == "array":
      return all(self._is_element_static(element, module, depth + 1) for element in named(node))
    if kind == "object":
      return all(self._is_member_static(member, module, depth + 1) for member in named(node))
    if kind in ("member_expression", "subscript_expression"):
      return self._is_access_static(node, module, depth + 1)

    return False

  def is_binding_static(self, binding: Binding, depth: int = 0, path: FieldPath = ()) -> bool:
    """
    Checks whether a binding (or a field of it) holds a static value.

    Args:
        binding: The resolved declaration.
        depth: Current recursion depth.
        path: Field path to navigate inside the bound value.

    Returns:
        bool: True for data assets and for LOCKED bindings with a static
        initializer. UNLOCKED bindings are never static.
    """
    if depth > self.max_depth:
      return False

    if binding.kind == BindingKind.DATA:
      return True

    if binding.is_namespace:
      if not path or path[0] == REST:
        return False
      member = self.resolver.resolve_member(binding, str(path[0]))
      return self._is_resolution_static(member, depth + 1, path[1:])

    if binding.kind not in (BindingKind.VARIABLE, BindingKind.DEFAULT_EXPORT):
      return False
    if not binding.is_locked or binding.initializer is None or binding.module is None:
      return False

    if binding.default is not None and not self.is_static(binding.default, binding.module, depth + 1):
      return False

    return self._value_at(binding.initializer, binding.module, binding.field_path + tuple(path), depth + 1)

  def _is_resolution_static(self, resolution: Union[Binding, Unresolvable], depth: int, path: FieldPath = ()) -> bool:
    if isinstance(resolution, Unresolvable):
      return False
    return self.is_binding_static(resolution, depth, path)

  def _is_element_static(self, element: Node, module: SourceModule, depth: int) -> bool:
    if element.type == "spread_element":
      inner = first_named(element)
      return inner is not None and self.is_static(inner, module, depth)
    return self.is_static(element, module, depth)

  def _is_member_static(self, member: Node, module: SourceModule, depth: int) -> bool:
    kind = member.type

    if kind == "pair":
      key = member.child_by_field_name("key")
      value = member.child_by_field_name("value")
      if key is None or value is None:
        return False
      if key.type == "computed_property_name":
        key_expr = first_named(key)
        if key_expr is None or not self.is_static(key_expr, module, depth):
          return False
      return self.is_static(value, module, depth)

    if kind == "shorthand_property_identifier":
      return self._is_resolution_static(self.resolver.resolve(member, module), depth)

    if kind == "spread_element":
      inner = first_named(member)
      return inner is not None and self.is_static(inner, module, depth)

    # Methods, getters and setters.
    return False

  def _is_access_static(self, node: Node, module: SourceModule, depth: int) -> bool:
    chain = member_chain(node)
    if chain is None:
      return False
    base, props = chain
    if base.type != "identifier":
      return self._value_at(base, module, tuple(props), depth)
    return self._is_resolution_static(self.resolver.resolve(base, module), depth, tuple(props))

  def _value_at(self, node: Node, module: SourceModule, path: FieldPath, depth: int) -> bool:
    """
    Navigates `path` into an initializer expression and checks the reached value.

    Args:
        node: The initializer (or a sub-expression of it).
        module: Module containing `node`.
        path: Remaining field path.
        depth: Current recursion depth.

    Returns:
        bool: Staticness of the addressed value.
    """
    if depth > self.max_depth:
      return False
    if not path:
      return self.is_static(node, module, depth)

    node = unwrap(node)
    head, rest = path[0], path[1:]
    if head == REST:
      return self.is_static(node, module, depth)

    if node.type == "object":
      return self._object_field(node, module, str(head), rest, depth)

    if node.type == "array":
      element = _array_element(node, head)
      if element is None:
        return self.is_static(node, module, depth)
      return self._value_at(element, module, rest, depth + 1)

    if node.type == "identifier":
      return self._is_resolution_static(self.resolver.resolve(node, module), depth + 1, path)

    if node.type in ("member_expression", "subscript_expression"):
      chain = member_chain(node)
      if chain is not None and chain[0].type == "identifier":
        base, props = chain
        return self._is_resolution_static(self.resolver.resolve(base, module), depth + 1, tuple(props) + path)

    return self.is_static(node, module, depth)

  def _object_field(self, obj: Node, module: SourceModule, name: str, rest: FieldPath, depth: int) -> bool:
    # Later members override earlier ones, so search from the end.
    for member in reversed(named(obj)):
      if member.type == "pair":
        key = member.child_by_field_name("key")
        value = member.child_by_field_name("value")
        if key is None or value is None:
          continue
        if key.type == "computed_property_name":
          break
        if property_key(key) == name:
          return self._value_at(value, module, rest, depth + 1)
      elif member.type == "shorthand_property_identifier":
        if text(member) == name:
          return self._is_resolution_static(self.resolver.resolve(member, module), depth + 1, rest)
      elif member.type in ("spread_element", "method_definition"):
        break
    return self.is_static(obj, module, depth)


def _array_elements(array: Node) -> List[Optional[Node]]:
  """Elements of an array literal by position; holes are None."""
  elements: List[Optional[Node]] = []
  current: Optional[Node] = None
  for child in array.children:
    if child.type == ",":
      elements.append(current)
      current = None
    elif child.is_named and child.type != "comment":
      current = child
  if current is not None:
    elements.append(current)
  return elements


def _array_element(array: Node, index: Union[str, int]) -> Optional[Node]:
  if isinstance(index, str):
    if not index.isdigit():
      return None
    index = int(index)
  elements: List[Optional[Node]] = _array_elements(array)
  if any(element is not None and element.type == "spread_element" for element in elements[: index + 1]):
    return None
  if index >= len(elements):
    return None
  return elements[index]

