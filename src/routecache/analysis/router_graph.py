"""
Router Graph Walker.

Finds the root router of the entry module and walks every route
registration and sub-router mount reachable from it, composing path
prefixes on the way down.

A router value is represented by a `RouterHandle`: the `new Hono()`
expression it was created by, the bindings it was traced through and the
calls chained directly onto the instantiation (`new Hono().basePath("/api")`).
Usages of a handle are method calls whose receiver resolves to one of its
bindings (or to another binding holding the same router), in any loaded
module, plus calls chained onto such calls (`app.get(...).post(...)`).
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from tree_sitter import Node

from routecache.analysis.loader import Program, SourceModule
from routecache.analysis.purity import HandlerPurityAnalyzer
from routecache.analysis.symbol_table import Binding, SymbolResolver, Unresolvable
from routecache.config import AnalyzerConfig
from routecache.core.route_entry import RouteEntry
from routecache.enums import BindingKind, HttpMethod, Verdict
from routecache.utils.ts_nodes import (
  NodeKey,
  call_arguments,
  member_property,
  named,
  node_key,
  string_value,
  text,
  unwrap,
  unwrap_await,
  walk,
)

logger = logging.getLogger(__name__)

MOUNT_METHOD = "route"
BASE_PATH_METHOD = "basePath"

# Router methods returning the router itself, so calls can be chained.
PASS_THROUGH_METHODS = frozenset({"use", "all", "on", "options", "onError", "notFound"})
CHAIN_METHODS = frozenset({m.value for m in HttpMethod} | {MOUNT_METHOD} | PASS_THROUGH_METHODS)

PARAM_MARKERS = (":", "*")

_SLASHES = re.compile(r"/+")


def join_paths(*parts: str) -> str:
  """
  Concatenates path segments and collapses repeated slashes.

  Args:
      *parts: Prefixes and the local path, outermost first.

  Returns:
      str: The composed path, always starting with `/`.
  """
  joined = _SLASHES.sub("/", "".join(parts))
  if not joined.startswith("/"):
    joined = "/" + joined
  return joined


@dataclass(frozen=True)
class ChainCall:
  """
  A registration or mount chained directly onto a router instantiation.
  """

  call: Node
  module: SourceModule
  base_path: str = ""


@dataclass(frozen=True)
class BoundName:
  """
  A binding a router was traced through, with the prefix its usages add.
  """

  binding: Binding
  base_path: str = ""


@dataclass(frozen=True)
class RouterHandle:
  """
  Reference to one router value.

  Attributes:
      module: Module containing the instantiation.
      instantiation: The `new <Router>()` expression.
      bindings: Bindings the value was traced through, innermost first.
      chain: Calls made on the instantiation expression itself.
      base_path: Prefix set with `basePath()` for calls chained from here on.
  """

  module: SourceModule
  instantiation: Node
  bindings: Tuple[BoundName, ...] = ()
  chain: Tuple[ChainCall, ...] = ()
  base_path: str = ""

  @property
  def key(self) -> Tuple[str, NodeKey]:
    """Identity used by the cycle guard."""
    return (str(self.module.path), node_key(self.instantiation))

  @property
  def name(self) -> str:
    """Display name of the router."""
    if self.bindings:
      return self.bindings[-1].binding.name
    return text(self.instantiation)


TraceResult = Union[RouterHandle, Unresolvable]


class RouterGraphWalker:
  """
  Walks router registrations and mounts, emitting one RouteEntry per route.

  Attributes:
      warnings (List[str]): Non-fatal conditions (unresolvable sub-routers,
          mount cycles).
  """

  def __init__(
    self,
    program: Program,
    resolver: SymbolResolver,
    purity: HandlerPurityAnalyzer,
    config: Optional[AnalyzerConfig] = None,
  ):
    self.program = program
    self.resolver = resolver
    self.purity = purity
    self.config = config or AnalyzerConfig()
    self.warnings: List[str] = []
    self._router_classes = frozenset(self.config.router_classes)
    self._call_sites: Dict[str, List[Node]] = {}
    self._traced: Dict[Tuple[Any, ...], Optional[RouterHandle]] = {}

  # --- Root discovery ---

  def find_root(self) -> Optional[RouterHandle]:
    """
    Locates the application router of the entry module.

    Tries, in order: the default export, a conventionally named binding and
    the first module-level variable created by instantiating a router.

    Returns:
        Optional[RouterHandle]: The root handle, if any heuristic matched.
    """
    entry = self.program.entry
    if entry is None:
      return None

    exported = self.resolver.resolve_export(entry, "default", entry.path.name)
    if isinstance(exported, Binding):
      handle = self.trace_binding(exported)
      if isinstance(handle, RouterHandle):
        logger.debug("Root router found via default export: %s", handle.name)
        return handle

    for name in self.config.root_names:
      binding = self.resolver.module_binding(entry, name)
      if binding is None:
        continue
      resolved = self.resolver.follow(binding)
      if isinstance(resolved, Unresolvable):
        continue
      handle = self.trace_binding(resolved)
      if isinstance(handle, RouterHandle):
        logger.debug("Root router found via conventional name: %s", name)
        return handle

    for binding in self._module_variables(entry):
      initializer = binding.initializer
      if initializer is None or not self._is_instantiation_chain(initializer):
        continue
      handle = self.trace_binding(binding)
      if isinstance(handle, RouterHandle):
        logger.debug("Root router found via instantiation: %s", binding.name)
        return handle

    return None

  def _module_variables(self, module: SourceModule) -> Iterator[Binding]:
    for stmt in named(module.root):
      declaration = stmt
      if stmt.type == "export_statement":
        inner = stmt.child_by_field_name("declaration")
        if inner is None:
          continue
        declaration = inner
      if declaration.type not in ("lexical_declaration", "variable_declaration"):
        continue
      for declarator in named(declaration):
        name = declarator.child_by_field_name("name") if declarator.type == "variable_declarator" else None
        if name is None or name.type != "identifier":
          continue
        binding = self.resolver.module_binding(module, text(name))
        if binding is not None:
          yield binding

  def _is_instantiation_chain(self, node: Node) -> bool:
    current = unwrap_await(node)
    while current.type == "call_expression":
      callee = current.child_by_field_name("function")
      if callee is None or unwrap(callee).type != "member_expression":
        return False
      receiver = unwrap(callee).child_by_field_name("object")
      if receiver is None:
        return False
      current = unwrap(receiver)
    return current.type == "new_expression" and self._constructor_name(current) in self._router_classes

  # --- Handle tracing ---

  def trace(self, node: Node, module: SourceModule, depth: int = 0) -> TraceResult:
    """
    Traces an expression to the router it evaluates to.

    Router identity ignores mutability: `let` bindings are followed too.

    Args:
        node: The expression (identifier, instantiation, chained call, ...).
        module: Module containing the expression.
        depth: Alias chain length so far.

    Returns:
        TraceResult: The handle, or Unresolvable.
    """
    if depth > self.resolver.max_hops:
      return Unresolvable(f"Router alias chain through '{text(node)}' is too deep")

    node = unwrap_await(node)

    if node.type == "new_expression":
      ctor = self._constructor_name(node)
      if ctor in self._router_classes:
        return RouterHandle(module=module, instantiation=node)
      return Unresolvable(f"'{text(node)}' does not create a router")

    if node.type == "call_expression":
      return self._trace_chain(node, module, depth)

    if node.type in ("identifier", "member_expression"):
      resolution = self.resolver.resolve_reference(node, module)
      if isinstance(resolution, Unresolvable):
        return resolution
      return self.trace_binding(resolution, depth + 1)

    return Unresolvable(f"Unsupported router expression '{text(node)}'")

  def trace_binding(self, binding: Binding, depth: int = 0) -> TraceResult:
    """
    Traces a binding to the router it holds.

    Args:
        binding: A resolved declaration.
        depth: Alias chain length so far.

    Returns:
        TraceResult: The handle (with `binding` appended), or Unresolvable.
    """
    if binding.kind not in (BindingKind.VARIABLE, BindingKind.DEFAULT_EXPORT):
      return Unresolvable(f"'{binding.name}' is not a router variable")
    if binding.initializer is None or binding.module is None or binding.field_path:
      return Unresolvable(f"'{binding.name}' has no traceable router value")

    traced = self.trace(binding.initializer, binding.module, depth + 1)
    if isinstance(traced, Unresolvable):
      return traced
    return replace(traced, bindings=traced.bindings + (BoundName(binding, traced.base_path),))

  def _trace_chain(self, call: Node, module: SourceModule, depth: int) -> TraceResult:
    callee = call.child_by_field_name("function")
    callee = unwrap(callee) if callee is not None else None
    if callee is None or callee.type != "member_expression":
      return Unresolvable(f"Unsupported router expression '{text(call)}'")

    method = member_property(callee)
    receiver = callee.child_by_field_name("object")
    if receiver is None or method is None:
      return Unresolvable(f"Unsupported router expression '{text(call)}'")

    if method != BASE_PATH_METHOD and method not in CHAIN_METHODS:
      return Unresolvable(f"'{method}()' does not return a router")

    inner = self.trace(receiver, module, depth + 1)
    if isinstance(inner, Unresolvable):
      return inner

    if method == BASE_PATH_METHOD:
      args = call_arguments(call)
      segment = string_value(args[0]) if args else None
      if segment is None:
        return Unresolvable(f"Non-literal basePath in '{text(call)}'")
      return replace(inner, base_path=join_paths(inner.base_path, segment))

    if inner.bindings:
      # Calls on a bound router are found as usages of its bindings.
      return inner
    return replace(inner, chain=inner.chain + (ChainCall(call=call, module=module, base_path=inner.base_path),))

  def _constructor_name(self, new_expr: Node) -> Optional[str]:
    ctor = new_expr.child_by_field_name("constructor")
    if ctor is None:
      return None
    ctor = unwrap(ctor)
    if ctor.type == "identifier":
      return text(ctor)
    if ctor.type == "member_expression":
      return member_property(ctor)
    return None

  # --- Usage discovery ---

  def call_sites(self, module: SourceModule) -> List[Node]:
    """
    Method calls in a module that may register routes or mount routers.

    Args:
        module: A loaded module.

    Returns:
        List[Node]: Call expressions, in source order.
    """
    cache_key = str(module.path)
    if cache_key not in self._call_sites:
      sites: List[Node] = []
      for node in walk(module.root):
        if node.type != "call_expression":
          continue
        callee = node.child_by_field_name("function")
        if callee is None or unwrap(callee).type != "member_expression":
          continue
        method = member_property(unwrap(callee))
        if method == MOUNT_METHOD or HttpMethod.from_member(method or "") is not None:
          sites.append(node)
      self._call_sites[cache_key] = sites
    return self._call_sites[cache_key]

  def usages(self, handle: RouterHandle) -> List[Tuple[Node, SourceModule, str]]:
    """
    Finds registrations and mounts made through the handle's bindings.

    Args:
        handle: The router.

    Returns:
        List[Tuple[Node, SourceModule, str]]: (call, module, base path)
        triples in module load order, then source order.
    """
    if not handle.bindings:
      return []
    found: List[Tuple[Node, SourceModule, str]] = []
    for module in list(self.program.modules.values()):
      for call in self.call_sites(module):
        rooted = self._receiver_root(call)
        if rooted is None:
          continue
        receiver, extra = rooted
        if receiver.type not in ("identifier", "member_expression"):
          continue
        resolution = self.resolver.resolve_reference(receiver, module)
        if not isinstance(resolution, Binding):
          continue
        base_path = self._binding_prefix(resolution, handle)
        if base_path is not None:
          found.append((call, module, base_path + extra))
    return found

  def _binding_prefix(self, binding: Binding, handle: RouterHandle) -> Optional[str]:
    """
    Prefix added by calls through `binding`, if it holds the router of `handle`.

    Bindings the handle was traced through are matched directly. Any other
    binding (`const v1 = app.basePath("/v1")`) is traced on its own and
    matched by instantiation.
    """
    for bound in handle.bindings:
      if bound.binding.key == binding.key:
        return bound.base_path

    key = binding.key
    if key not in self._traced:
      traced = self.trace_binding(binding)
      self._traced[key] = traced if isinstance(traced, RouterHandle) else None
    alias = self._traced[key]
    if alias is None or alias.key != handle.key:
      return None
    return alias.bindings[-1].base_path

  def _receiver_root(self, call: Node) -> Optional[Tuple[Node, str]]:
    """
    Descends through chained router calls to the base receiver.

    Returns:
        Optional[Tuple[Node, str]]: The receiver expression and the prefix
        added by `basePath()` calls on the way, or None when the chain cannot
        be followed.
    """
    callee = unwrap(call.child_by_field_name("function"))
    receiver = callee.child_by_field_name("object")
    if receiver is None:
      return None
    current = unwrap(receiver)
    prefix = ""
    while current.type == "call_expression":
      inner = current.child_by_field_name("function")
      inner = unwrap(inner) if inner is not None else None
      if inner is None or inner.type != "member_expression":
        return None
      method = member_property(inner)
      if method == BASE_PATH_METHOD:
        args = call_arguments(current)
        segment = string_value(args[0]) if args else None
        if segment is None:
          logger.debug("Skipping chain with non-literal basePath: %s", text(current))
          return None
        prefix = segment + prefix
      elif method not in CHAIN_METHODS:
        return None
      next_receiver = inner.child_by_field_name("object")
      if next_receiver is None:
        return None
      current = unwrap(next_receiver)
    return current, prefix

  # --- Walking ---

  def walk(
    self,
    handle: RouterHandle,
    prefix: str = "",
    depth: int = 0,
    trail: Tuple[Tuple[str, NodeKey], ...] = (),
  ) -> Iterator[RouteEntry]:
    """
    Emits the routes of a router and, recursively, of its mounted children.

    Args:
        handle: The router to walk.
        prefix: Composed prefix of all enclosing mounts.
        depth: Mount nesting level.
        trail: Keys of the routers on the current mount path.

    Yields:
        RouteEntry: One entry per registered route.
    """
    if handle.key in trail or depth > self.config.max_mount_depth:
      self._warn(f"Router mount cycle or excessive nesting at '{prefix or '/'}' ({handle.name}); branch skipped")
      return
    trail = trail + (handle.key,)

    for chained in handle.chain:
      yield from self._dispatch(chained.call, chained.module, prefix + chained.base_path, depth, trail)

    for call, module, extra in self.usages(handle):
      yield from self._dispatch(call, module, prefix + extra, depth, trail)

  def _dispatch(
    self,
    call: Node,
    module: SourceModule,
    prefix: str,
    depth: int,
    trail: Tuple[Tuple[str, NodeKey], ...],
  ) -> Iterator[RouteEntry]:
    method = member_property(unwrap(call.child_by_field_name("function")))
    args = call_arguments(call)
    if method == MOUNT_METHOD:
      yield from self._mount(args, module, prefix, depth, trail)
      return
    verb = HttpMethod.from_member(method or "")
    if verb is not None:
      entry = self._register(verb, args, module, prefix)
      if entry is not None:
        yield entry

  def _register(self, verb: HttpMethod, args: List[Node], module: SourceModule, prefix: str) -> Optional[RouteEntry]:
    """
    Builds the entry for one `router.<verb>(path, ...handlers)` call.

    Args:
        verb: The HTTP method.
        args: Call arguments.
        module: Module containing the call.
        prefix: Composed mount prefix.

    Returns:
        Optional[RouteEntry]: The entry, or None when the path is not a literal.
    """
    local = string_value(args[0]) if args else None
    if local is None:
      logger.debug("Skipping %s registration without literal path in %s", verb.name, module.path.name)
      return None

    path = join_paths(prefix, local)
    method = verb.value.upper()

    if any(marker in path for marker in PARAM_MARKERS):
      return RouteEntry(method=method, path=path, type=Verdict.DYNAMIC, reason="Route has params/wildcards")

    handlers = args[1:]
    if not handlers:
      return RouteEntry(method=method, path=path, type=Verdict.DYNAMIC, reason="No handler")

    for index, handler in enumerate(handlers, start=1):
      verdict = self.purity.classify(handler, module)
      if verdict.is_static:
        continue
      role = "Middleware" if index < len(handlers) else "Handler"
      return RouteEntry(
        method=method,
        path=path,
        type=Verdict.DYNAMIC,
        reason=f"{role} [Arg {index}] is dynamic: {verdict.reason}",
      )

    return RouteEntry(method=method, path=path, type=Verdict.STATIC)

  def _mount(
    self,
    args: List[Node],
    module: SourceModule,
    prefix: str,
    depth: int,
    trail: Tuple[Tuple[str, NodeKey], ...],
  ) -> Iterator[RouteEntry]:
    if len(args) < 2:
      return
    segment = string_value(args[0])
    if segment is None:
      logger.debug("Skipping mount without literal prefix in %s", module.path.name)
      return

    mount_path = join_paths(prefix, segment)
    child = self.trace(args[1], module)
    if isinstance(child, Unresolvable):
      self._warn(f"Could not resolve sub-router mounted at '{mount_path}': {child.reason}")
      return

    yield from self.walk(child, prefix + segment, depth + 1, trail)

  def _warn(self, message: str) -> None:
    logger.warning(message)
    self.warnings.append(message)
