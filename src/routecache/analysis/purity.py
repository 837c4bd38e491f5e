"""
Handler Purity Analyzer.

Classifies a route handler (or middleware) as STATIC when its response is
provably identical for every request. A function body is examined in five
passes; the first failing pass decides the reason:

1.  **Global-impurity scan**: references to non-deterministic or
    environment-dependent globals (`Date`, `Math`, `process`, ...).
2.  **Control-delegation scan**: calling `next` (or the second parameter).
3.  **Request-context scan**: every use of the first parameter must be a
    response-building member from the allow-list, and calls to those members
    (`c.header(...)`, `c.status(...)`) must have static arguments.
4.  **Return extraction**: every returned value must be a response call
    (`c.json(...)`, `c.status(200).text(...)`) with static arguments.
5.  **Reference scan**: every identifier must resolve, and none may name a
    reassignable binding declared outside the handler. Such values can pick
    which static response is returned.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from tree_sitter import Node

from routecache.analysis.loader import SourceModule
from routecache.analysis.static_values import StaticValueEvaluator
from routecache.analysis.symbol_table import Binding, Resolution, SymbolResolver, Unresolvable
from routecache.config import AnalyzerConfig
from routecache.enums import BindingKind
from routecache.utils.ts_nodes import (
  TRANSPARENT_TYPES,
  call_arguments,
  first_named,
  function_parameters,
  is_function,
  member_property,
  named,
  outside_functions,
  property_key,
  same_node,
  text,
  unwrap,
  unwrap_await,
  walk,
)

logger = logging.getLogger(__name__)

_REFERENCE_TYPES = ("identifier", "shorthand_property_identifier")

# Globals whose value can never change.
_CONSTANT_GLOBALS = frozenset({"undefined", "NaN", "Infinity"})

# Parents whose identifier children live in type space.
_TYPE_POSITIONS = frozenset({"type_query", "nested_identifier", "nested_type_identifier"})


@dataclass(frozen=True)
class Classification:
  """
  Verdict for one handler.

  Attributes:
      is_static: True if the handler always produces the same response.
      reason: The disqualifying construct (None when static).
  """

  is_static: bool
  reason: Optional[str] = None

  @classmethod
  def static(cls) -> "Classification":
    return cls(is_static=True)

  @classmethod
  def dynamic(cls, reason: str) -> "Classification":
    return cls(is_static=False, reason=reason)


class HandlerPurityAnalyzer:
  """
  Classifies handler expressions found in route registrations.
  """

  def __init__(
    self,
    resolver: SymbolResolver,
    evaluator: StaticValueEvaluator,
    config: Optional[AnalyzerConfig] = None,
  ):
    """
    Initializes the analyzer.

    Args:
        resolver: Shared declaration index.
        evaluator: Evaluator used for response arguments.
        config: Allow-lists and global names.
    """
    self.resolver = resolver
    self.evaluator = evaluator
    self.config = config or AnalyzerConfig()
    self._allowed = frozenset(self.config.context_allow_list)
    self._response_methods = frozenset(self.config.response_methods)
    self._dynamic_globals = frozenset(self.config.dynamic_globals)

  def classify(self, handler: Node, module: SourceModule, depth: int = 0) -> Classification:
    """
    Classifies a handler argument.

    Inline functions are analysed directly; identifiers (and namespace
    members) are traced to their function definitions first.

    Args:
        handler: The argument expression.
        module: Module containing the expression.
        depth: Alias chain length so far.

    Returns:
        Classification: The verdict.
    """
    node = unwrap(handler)

    if is_function(node):
      return self.analyze_function(node, module)

    if node.type in ("identifier", "member_expression"):
      return self._classify_resolution(self.resolver.resolve_reference(node, module), depth)

    return Classification.dynamic("Unknown handler expression")

  def _classify_resolution(self, resolution: Resolution, depth: int) -> Classification:
    if isinstance(resolution, Unresolvable):
      return Classification.dynamic(f"External/unresolvable handler: {resolution.reason}")
    if depth > self.config.max_depth:
      return Classification.dynamic(f"External/unresolvable handler: alias chain through '{resolution.name}' is too deep")

    binding: Binding = resolution
    if binding.kind == BindingKind.FUNCTION and binding.initializer is not None and binding.module is not None:
      return self.analyze_function(binding.initializer, binding.module)

    if binding.kind in (BindingKind.VARIABLE, BindingKind.DEFAULT_EXPORT):
      if not binding.is_locked:
        return Classification.dynamic("Handler binding is reassignable")
      if binding.initializer is None or binding.module is None or binding.field_path:
        return Classification.dynamic(f"External/unresolvable handler: '{binding.name}' has no traceable value")
      return self.classify(binding.initializer, binding.module, depth + 1)

    return Classification.dynamic(f"External/unresolvable handler: '{binding.name}' is not a function")

  def analyze_function(self, func: Node, module: SourceModule) -> Classification:
    """
    Runs the five purity passes over a function body.

    Args:
        func: A function-like node.
        module: Module containing the function.

    Returns:
        Classification: STATIC only if every pass succeeds.
    """
    params = function_parameters(func)
    body = func.child_by_field_name("body")

    dynamic_global = self._find_dynamic_global(func, module)
    if dynamic_global is not None:
      return Classification.dynamic(f"Uses dynamic global: {dynamic_global}")

    if body is None:
      return Classification.dynamic("No return")

    if self._calls_next(body, module, params):
      return Classification.dynamic("Middleware chain (calls next)")

    context = params[0] if params else None
    if context is not None:
      violation = self._context_violation(context, body, module)
      if violation is not None:
        return Classification.dynamic(violation)

    verdict = self._check_returns(body, module, context)
    if not verdict.is_static:
      return verdict

    reference = self._find_untraceable_reference(func, module)
    if reference is not None:
      return Classification.dynamic(f"Uses unresolvable reference: {reference}")
    return verdict

  def _find_dynamic_global(self, func: Node, module: SourceModule) -> Optional[str]:
    for node in walk(func):
      if node.type not in _REFERENCE_TYPES:
        continue
      name = text(node)
      if name not in self._dynamic_globals:
        continue
      if isinstance(self.resolver.resolve(node, module), Unresolvable):
        return name
    return None

  def _find_untraceable_reference(self, func: Node, module: SourceModule) -> Optional[str]:
    """
    Finds the first identifier whose value cannot be pinned down.

    An identifier fails when it does not resolve (ambient globals, external
    packages) or when it names an UNLOCKED binding declared outside `func`.

    Args:
        func: The handler function.
        module: Module containing the function.

    Returns:
        Optional[str]: The offending name, or None.
    """
    for node in walk(func):
      if node.type not in _REFERENCE_TYPES:
        continue
      name = text(node)
      if name in _CONSTANT_GLOBALS:
        continue
      if node.parent is not None and node.parent.type in _TYPE_POSITIONS:
        continue
      resolution = self.resolver.resolve(node, module)
      if isinstance(resolution, Unresolvable):
        return name
      if not resolution.is_locked and not _declared_within(resolution, func, module):
        return name
    return None

  def _calls_next(self, body: Node, module: SourceModule, params: List[Node]) -> bool:
    delegate = params[1] if len(params) > 1 and params[1].type == "identifier" else None
    for node in walk(body):
      if node.type != "call_expression":
        continue
      callee = node.child_by_field_name("function")
      if callee is None:
        continue
      callee = unwrap(callee)
      if callee.type != "identifier":
        continue
      if text(callee) == "next":
        return True
      if delegate is not None:
        resolution = self.resolver.resolve(callee, module)
        if isinstance(resolution, Binding) and same_node(resolution.declaration, delegate):
          return True
    return False

  def _context_violation(self, context: Node, body: Node, module: SourceModule) -> Optional[str]:
    """
    Finds the first disallowed use of the request context.

    Args:
        context: The first parameter pattern.
        body: The function body.
        module: Module containing the function.

    Returns:
        Optional[str]: A reason, or None when every use is allowed.
    """
    if context.type == "object_pattern":
      return self._pattern_violation(context)
    if context.type != "identifier":
      return None

    name = text(context)
    for node in walk(body):
      if node.type not in _REFERENCE_TYPES or text(node) != name:
        continue
      resolution = self.resolver.resolve(node, module)
      if not isinstance(resolution, Binding) or not same_node(resolution.declaration, context):
        continue
      violation = self._use_violation(node, module)
      if violation is not None:
        return violation
    return None

  def _use_violation(self, use: Node, module: SourceModule) -> Optional[str]:
    current = use
    parent = current.parent
    while parent is not None and parent.type in TRANSPARENT_TYPES:
      current, parent = parent, parent.parent

    if use.type == "shorthand_property_identifier" or parent is None:
      return "Context object escapes"

    if parent.type in ("member_expression", "subscript_expression") and same_node(
      parent.child_by_field_name("object"), current
    ):
      prop = member_property(parent)
      if prop is None:
        return "Context object escapes"
      if prop not in self._allowed:
        return f"Uses dynamic context: c.{prop}"
      return self._call_violation(parent, module)

    if parent.type == "variable_declarator" and same_node(parent.child_by_field_name("value"), current):
      pattern = parent.child_by_field_name("name")
      if pattern is not None and pattern.type == "object_pattern":
        return self._pattern_violation(pattern)
      return "Aliasing context object"

    if parent.type == "assignment_expression" and same_node(parent.child_by_field_name("right"), current):
      return "Aliasing context object"

    return "Context object escapes"

  def _call_violation(self, member: Node, module: SourceModule) -> Optional[str]:
    """
    Checks the arguments of allowed context calls starting at `member`.

    Follows chains such as `c.status(201).header('X', v)`; headers and
    status are part of the response just like the body.

    Args:
        member: The `c.<allowed>` member expression.
        module: Module containing the expression.

    Returns:
        Optional[str]: A reason, or None when every argument is static.
    """
    current = member
    while True:
      call = current.parent
      if call is None or call.type != "call_expression" or not same_node(call.child_by_field_name("function"), current):
        return None

      for arg in call_arguments(call):
        if arg.type == "spread_element":
          arg = first_named(arg) or arg
        if not self.evaluator.is_static(arg, module):
          if member_property(current) in self._response_methods:
            return "Response body has variables"
          return "Response metadata has variables"

      outer = call.parent
      if outer is None or outer.type != "member_expression" or not same_node(outer.child_by_field_name("object"), call):
        return None
      if member_property(outer) not in self._allowed:
        return None
      current = outer

  def _pattern_violation(self, pattern: Node) -> Optional[str]:
    for member in named(pattern):
      if member.type == "shorthand_property_identifier_pattern":
        key: Optional[str] = text(member)
      elif member.type == "pair_pattern":
        key_node = member.child_by_field_name("key")
        key = property_key(key_node) if key_node is not None else None
        if key is None:
          return "Context object escapes"
      elif member.type == "object_assignment_pattern":
        left = member.child_by_field_name("left")
        key = text(left) if left is not None else None
      else:
        return "Aliasing context object"
      if key is not None and key not in self._allowed:
        return f"Uses dynamic context: c.{key}"
    return None

  def _check_returns(self, body: Node, module: SourceModule, context: Optional[Node]) -> Classification:
    if body.type != "statement_block":
      return self._check_response(body, module, context)

    returns = [node for node in walk(body, descend=outside_functions) if node.type == "return_statement"]
    if not returns:
      return Classification.dynamic("No return")

    for statement in returns:
      value = first_named(statement)
      if value is None:
        return Classification.dynamic("Empty return")
      verdict = self._check_response(value, module, context)
      if not verdict.is_static:
        return verdict
    return Classification.static()

  def _check_response(self, expr: Node, module: SourceModule, context: Optional[Node]) -> Classification:
    """
    Checks one returned expression.

    Accepts a chain of allowed context calls rooted at the context parameter,
    ending in a response method, whose arguments are all static.

    Args:
        expr: The returned expression.
        module: Module containing the expression.
        context: The first parameter pattern.

    Returns:
        Classification: The verdict for this return path.
    """
    node = unwrap_await(expr)
    calls: List[Node] = []
    methods: List[str] = []

    while node.type == "call_expression":
      callee = node.child_by_field_name("function")
      if callee is None:
        break
      callee = unwrap(callee)
      if callee.type != "member_expression":
        break
      prop = member_property(callee)
      receiver = callee.child_by_field_name("object")
      if prop is None or receiver is None:
        break
      calls.append(node)
      methods.append(prop)
      node = unwrap(receiver)

    if not calls or methods[0] not in self._response_methods:
      return Classification.dynamic("Complex return value")
    if any(method not in self._allowed for method in methods):
      return Classification.dynamic("Complex return value")
    if not self._is_context(node, module, context):
      return Classification.dynamic("Complex return value")

    for call in calls:
      for arg in call_arguments(call):
        if arg.type == "spread_element":
          arg = first_named(arg) or arg
        if not self.evaluator.is_static(arg, module):
          return Classification.dynamic("Response body has variables")
    return Classification.static()

  def _is_context(self, node: Node, module: SourceModule, context: Optional[Node]) -> bool:
    if context is None or context.type != "identifier" or node.type != "identifier":
      return False
    resolution = self.resolver.resolve(node, module)
    return isinstance(resolution, Binding) and same_node(resolution.declaration, context)


def _declared_within(binding: Binding, func: Node, module: SourceModule) -> bool:
  """True if the binding is declared inside `func` (parameters included)."""
  decl = binding.declaration
  if decl is None or binding.module is None or binding.module.path != module.path:
    return False
  return func.start_byte <= decl.start_byte and decl.end_byte <= func.end_byte
