"""
Declaration Index and Symbol Resolution.

This module replaces a full compiler type-checker with an explicit,
purpose-built declaration index. A single pre-pass over each module records:

1.  **Scopes**: program, function (parameters and `var`), statement block
    (`let`, `const`, `function`, `class`), `for` headers and `catch` clauses.
2.  **Bindings**: one `Binding` per declared name, with its mutability
    decided by the declaration form (`const` and imports are LOCKED; `let`,
    `var`, parameters and function declarations are UNLOCKED).
3.  **Exports**: local exports, default exports, `export ... from`
    re-exports and `export *` star re-exports.

`SymbolResolver.resolve` maps an identifier use to its `Binding`, following
imports into other modules (including renamed imports, default exports and
re-export chains) and returning `Unresolvable` for ambient globals, external
packages and anything else it cannot trace.

Destructuring declarations (`const { a, b: [c] } = src`) produce one binding
per field. Each such binding keeps the whole source expression as its
initializer plus a `field_path` (`("a",)`, `("b", 0)`) locating the field.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from tree_sitter import Node

from routecache.analysis.loader import DataAsset, ImportTarget, Program, SourceModule, declares_json_import
from routecache.enums import BindingKind, Mutability
from routecache.utils.ts_nodes import (
  FUNCTION_TYPES,
  NodeKey,
  named,
  node_key,
  property_key,
  string_value,
  text,
)

logger = logging.getLogger(__name__)

# Field path element standing for "everything else" (`...rest` patterns).
REST = "..."

FieldPath = Tuple[Union[str, int], ...]


@dataclass(frozen=True, eq=False)
class Binding:
  """
  A named declaration.

  Attributes:
      name: Declared (local) name.
      kind: Declaration form.
      mutability: LOCKED for single-assignment forms.
      module: Module holding the declaration (importing module for imports).
      declaration: The declaring identifier / statement node.
      initializer: Initial value expression, the function node for function
          declarations, the exported expression for default exports.
      field_path: Location of a destructured field inside `initializer`.
      default: Destructuring default value (`{ a = 1 }`).
      import_source: Module specifier for IMPORT bindings.
      import_name: Imported name (`default`, `*` or a named export).
      json_import: The import declares the JSON import attribute.
  """

  name: str
  kind: BindingKind
  mutability: Mutability
  module: Optional[SourceModule] = None
  declaration: Optional[Node] = None
  initializer: Optional[Node] = None
  field_path: FieldPath = ()
  default: Optional[Node] = None
  import_source: Optional[str] = None
  import_name: Optional[str] = None
  json_import: bool = False

  @property
  def is_locked(self) -> bool:
    """True for single-assignment bindings."""
    return self.mutability == Mutability.LOCKED

  @property
  def is_namespace(self) -> bool:
    """True for `import * as ns` bindings."""
    return self.kind == BindingKind.IMPORT and self.import_name == "*"

  @property
  def key(self) -> Tuple[Any, ...]:
    """Identity of the declaration site."""
    location = str(self.module.path) if self.module is not None else None
    decl = node_key(self.declaration) if self.declaration is not None else None
    return (location, self.kind.value, self.name, decl, self.field_path, self.import_name)

  def __repr__(self) -> str:
    where = self.module.path.name if self.module is not None else "<data>"
    return f"Binding({self.name!r}, {self.kind.value}, {self.mutability.value}, {where})"


@dataclass(frozen=True)
class Unresolvable:
  """
  Result of a failed resolution. Always treated as non-static.
  """

  reason: str


Resolution = Union[Binding, Unresolvable]


class Scope:
  """
  A lexical scope holding declared bindings.
  """

  def __init__(self, node: Node, parent: Optional["Scope"] = None, is_function: bool = False):
    """
    Initialize the scope.

    Args:
        node: The syntax node opening the scope.
        parent: The enclosing scope (None for the module scope).
        is_function: True for function and module scopes (targets of `var`).
    """
    self.node = node
    self.parent = parent
    self.is_function = is_function
    self.symbols: Dict[str, Binding] = {}

  def declare(self, binding: Binding) -> None:
    """Registers a binding; later declarations of a name win."""
    self.symbols[binding.name] = binding

  def get(self, name: str) -> Optional[Binding]:
    """Local lookup only."""
    return self.symbols.get(name)

  def function_scope(self) -> "Scope":
    """Nearest enclosing function (or module) scope."""
    scope: Scope = self
    while not scope.is_function and scope.parent is not None:
      scope = scope.parent
    return scope


@dataclass
class ExportEntry:
  """
  One name exported by a module.

  Exactly one of `local_name`, `binding` or `source` is set: a local
  declaration name, a synthetic binding (anonymous default export) or the
  specifier of a re-export.
  """

  local_name: Optional[str] = None
  binding: Optional[Binding] = None
  source: Optional[str] = None
  imported_name: Optional[str] = None
  json_import: bool = False


@dataclass
class ModuleIndex:
  """
  Declaration index of one module.
  """

  module: SourceModule
  module_scope: Scope
  scopes: Dict[NodeKey, Scope] = field(default_factory=dict)
  exports: Dict[str, ExportEntry] = field(default_factory=dict)
  star_exports: List[Tuple[str, bool]] = field(default_factory=list)


class _IndexBuilder:
  """
  Single pre-pass populating a `ModuleIndex`.
  """

  _BLOCK_TYPES = frozenset({"statement_block", "for_statement", "switch_body", "class_body"})

  def __init__(self, module: SourceModule):
    self.module = module
    root_scope = Scope(module.root, is_function=True)
    self.index = ModuleIndex(module=module, module_scope=root_scope)
    self.index.scopes[node_key(module.root)] = root_scope

  def build(self) -> ModuleIndex:
    stack: List[Tuple[Node, Scope]] = [(child, self.index.module_scope) for child in reversed(self.module.root.children)]
    while stack:
      node, scope = stack.pop()
      inner = self._enter(node, scope)
      for child in reversed(node.children):
        stack.append((child, inner))
    return self.index

  def _enter(self, node: Node, scope: Scope) -> Scope:
    """Records declarations made by `node`; returns the scope for its children."""
    kind = node.type

    if kind in FUNCTION_TYPES:
      if kind in ("function_declaration", "generator_function_declaration"):
        self._declare_function(node, scope)
      inner = self._open(node, scope, is_function=True)
      if kind in ("function", "function_expression", "generator_function"):
        name = node.child_by_field_name("name")
        if name is not None:
          self._declare(inner, name, BindingKind.FUNCTION, Mutability.UNLOCKED, initializer=node)
      self._declare_parameters(node, inner)
      return inner

    if kind == "statement_block" and node.parent is not None and node.parent.type in FUNCTION_TYPES:
      # The body block shares the function scope.
      return scope

    if kind == "for_in_statement":
      inner = self._open(node, scope)
      self._declare_loop_variables(node, inner)
      return inner

    if kind in self._BLOCK_TYPES:
      return self._open(node, scope)

    if kind == "catch_clause":
      inner = self._open(node, scope)
      param = node.child_by_field_name("parameter")
      if param is not None:
        for name_node, path, default in _pattern_names(param):
          self._declare(inner, name_node, BindingKind.PARAMETER, Mutability.UNLOCKED, field_path=path, default=default)
      return inner

    if kind == "lexical_declaration":
      locked = _declaration_keyword(node) == "const"
      self._declare_variables(node, scope, Mutability.LOCKED if locked else Mutability.UNLOCKED)
    elif kind == "variable_declaration":
      self._declare_variables(node, scope.function_scope(), Mutability.UNLOCKED)
    elif kind in ("class_declaration", "abstract_class_declaration"):
      name = node.child_by_field_name("name")
      if name is not None:
        self._declare(scope, name, BindingKind.CLASS, Mutability.UNLOCKED, initializer=node)
    elif kind == "import_statement":
      self._declare_imports(node)
    elif kind == "export_statement":
      self._record_export(node)

    return scope

  def _open(self, node: Node, parent: Scope, is_function: bool = False) -> Scope:
    scope = Scope(node, parent=parent, is_function=is_function)
    self.index.scopes[node_key(node)] = scope
    return scope

  def _declare(
    self,
    scope: Scope,
    name_node: Node,
    kind: BindingKind,
    mutability: Mutability,
    initializer: Optional[Node] = None,
    field_path: FieldPath = (),
    default: Optional[Node] = None,
  ) -> Binding:
    binding = Binding(
      name=text(name_node),
      kind=kind,
      mutability=mutability,
      module=self.module,
      declaration=name_node,
      initializer=initializer,
      field_path=field_path,
      default=default,
    )
    scope.declare(binding)
    return binding

  def _declare_function(self, node: Node, scope: Scope) -> None:
    name = node.child_by_field_name("name")
    if name is not None:
      self._declare(scope, name, BindingKind.FUNCTION, Mutability.UNLOCKED, initializer=node)

  def _declare_parameters(self, func: Node, scope: Scope) -> None:
    single = func.child_by_field_name("parameter")
    params: List[Node] = [single] if single is not None else []
    if single is None:
      container = func.child_by_field_name("parameters")
      if container is not None:
        params = named(container)

    for param in params:
      if param.type in ("required_parameter", "optional_parameter"):
        pattern = param.child_by_field_name("pattern")
        if pattern is None:
          continue
        param = pattern
      for name_node, path, default in _pattern_names(param):
        self._declare(scope, name_node, BindingKind.PARAMETER, Mutability.UNLOCKED, field_path=path, default=default)

  def _declare_variables(self, node: Node, scope: Scope, mutability: Mutability) -> None:
    for declarator in named(node):
      if declarator.type != "variable_declarator":
        continue
      pattern = declarator.child_by_field_name("name")
      value = declarator.child_by_field_name("value")
      if pattern is None:
        continue
      for name_node, path, default in _pattern_names(pattern):
        self._declare(
          scope,
          name_node,
          BindingKind.VARIABLE,
          mutability,
          initializer=value,
          field_path=path,
          default=default,
        )

  def _declare_loop_variables(self, node: Node, scope: Scope) -> None:
    # `for (const x of xs)` / `for (let k in o)`; a bare `for (x of xs)` assigns.
    keyword = node.child_by_field_name("kind")
    left = node.child_by_field_name("left")
    if keyword is None or left is None:
      return
    target = scope.function_scope() if text(keyword) == "var" else scope
    for name_node, path, default in _pattern_names(left):
      # Values come from the iteration, never from a traceable initializer.
      self._declare(target, name_node, BindingKind.PARAMETER, Mutability.UNLOCKED, field_path=path, default=default)

  def _declare_imports(self, node: Node) -> None:
    source = string_value(node.child_by_field_name("source"))
    if source is None:
      return
    as_data = declares_json_import(node)
    clause = next((c for c in named(node) if c.type == "import_clause"), None)
    if clause is None:
      return

    scope = self.index.module_scope
    for part in named(clause):
      if part.type == "identifier":
        self._declare_import(scope, part, source, "default", as_data)
      elif part.type == "namespace_import":
        alias = next((c for c in named(part) if c.type == "identifier"), None)
        if alias is not None:
          self._declare_import(scope, alias, source, "*", as_data)
      elif part.type == "named_imports":
        for spec in named(part):
          if spec.type != "import_specifier":
            continue
          name_node = spec.child_by_field_name("name")
          alias_node = spec.child_by_field_name("alias") or name_node
          if name_node is None or alias_node is None:
            continue
          imported = string_value(name_node) if name_node.type == "string" else text(name_node)
          self._declare_import(scope, alias_node, source, imported, as_data)

  def _declare_import(self, scope: Scope, name_node: Node, source: str, imported: Optional[str], as_data: bool) -> None:
    scope.declare(
      Binding(
        name=text(name_node),
        kind=BindingKind.IMPORT,
        mutability=Mutability.LOCKED,
        module=self.module,
        declaration=name_node,
        import_source=source,
        import_name=imported,
        json_import=as_data,
      )
    )

  def _record_export(self, node: Node) -> None:
    exports = self.index.exports
    source = string_value(node.child_by_field_name("source"))
    as_data = declares_json_import(node)
    is_default = any(child.type == "default" for child in node.children)

    declaration = node.child_by_field_name("declaration")
    value = node.child_by_field_name("value")

    if is_default:
      target = declaration if declaration is not None else value
      if target is None:
        return
      name = target.child_by_field_name("name") if declaration is not None else None
      if target.type == "identifier":
        exports["default"] = ExportEntry(local_name=text(target))
      elif name is not None:
        exports["default"] = ExportEntry(local_name=text(name))
      else:
        exports["default"] = ExportEntry(
          binding=Binding(
            name="default",
            kind=BindingKind.DEFAULT_EXPORT,
            mutability=Mutability.LOCKED,
            module=self.module,
            declaration=target,
            initializer=target,
          )
        )
      return

    if declaration is not None:
      for name in _declared_names(declaration):
        exports[name] = ExportEntry(local_name=name)
      return

    clause = next((c for c in named(node) if c.type == "export_clause"), None)
    if clause is not None:
      for spec in named(clause):
        if spec.type != "export_specifier":
          continue
        name_node = spec.child_by_field_name("name")
        alias_node = spec.child_by_field_name("alias") or name_node
        if name_node is None or alias_node is None:
          continue
        local = string_value(name_node) if name_node.type == "string" else text(name_node)
        exported = string_value(alias_node) if alias_node.type == "string" else text(alias_node)
        if source is not None:
          exports[exported] = ExportEntry(source=source, imported_name=local, json_import=as_data)
        else:
          exports[exported] = ExportEntry(local_name=local)
      return

    if source is not None:
      namespace = next((c for c in named(node) if c.type == "namespace_export"), None)
      if namespace is not None:
        alias = next((c for c in named(namespace) if c.type in ("identifier", "string")), None)
        if alias is not None:
          exported = string_value(alias) if alias.type == "string" else text(alias)
          exports[exported] = ExportEntry(source=source, imported_name="*", json_import=as_data)
      else:
        self.index.star_exports.append((source, as_data))


def _declaration_keyword(node: Node) -> str:
  kind = node.child_by_field_name("kind")
  if kind is not None:
    return text(kind)
  return node.children[0].type if node.children else ""


def _declared_names(declaration: Node) -> Iterator[str]:
  if declaration.type in ("lexical_declaration", "variable_declaration"):
    for declarator in named(declaration):
      pattern = declarator.child_by_field_name("name") if declarator.type == "variable_declarator" else None
      if pattern is not None:
        for name_node, _, _ in _pattern_names(pattern):
          yield text(name_node)
  else:
    name = declaration.child_by_field_name("name")
    if name is not None:
      yield text(name)


def _pattern_names(pattern: Node, path: FieldPath = ()) -> Iterator[Tuple[Node, FieldPath, Optional[Node]]]:
  """
  Expands a binding pattern into (name node, field path, default) triples.

  Args:
      pattern: identifier, object_pattern, array_pattern or a wrapper.
      path: Field path of `pattern` inside the destructured value.

  Yields:
      Tuple[Node, FieldPath, Optional[Node]]: One triple per bound name.
  """
  kind = pattern.type
  if kind in ("identifier", "shorthand_property_identifier_pattern"):
    yield pattern, path, None

  elif kind == "object_pattern":
    for member in named(pattern):
      if member.type == "shorthand_property_identifier_pattern":
        yield member, path + (text(member),), None
      elif member.type == "pair_pattern":
        key = member.child_by_field_name("key")
        value = member.child_by_field_name("value")
        if key is None or value is None:
          continue
        key_name = property_key(key)
        sub_path = path + ((key_name,) if key_name is not None else (REST,))
        yield from _pattern_names(value, sub_path)
      elif member.type == "object_assignment_pattern":
        left = member.child_by_field_name("left")
        right = member.child_by_field_name("right")
        if left is not None:
          for name_node, sub_path, _ in _pattern_names(left, path + (text(left),)):
            yield name_node, sub_path, right
      elif member.type == "rest_pattern":
        for name_node, _, _ in _pattern_names(_rest_target(member), path):
          yield name_node, path + (REST,), None

  elif kind == "array_pattern":
    index = 0
    for child in pattern.children:
      if child.type == ",":
        index += 1
        continue
      if not child.is_named or child.type == "comment":
        continue
      if child.type == "rest_pattern":
        for name_node, _, _ in _pattern_names(_rest_target(child), path):
          yield name_node, path + (REST,), None
      else:
        yield from _pattern_names(child, path + (index,))

  elif kind in ("assignment_pattern", "object_assignment_pattern"):
    left = pattern.child_by_field_name("left")
    right = pattern.child_by_field_name("right")
    if left is not None:
      for name_node, sub_path, _ in _pattern_names(left, path):
        yield name_node, sub_path, right

  elif kind == "rest_pattern":
    yield from _pattern_names(_rest_target(pattern), path + (REST,))


def _rest_target(rest: Node) -> Node:
  children = named(rest)
  return children[0] if children else rest


class SymbolResolver:
  """
  Resolves identifier uses to declarations across the modules of a Program.

  All caches are scoped to the instance, i.e. to one analysis run.
  """

  def __init__(self, program: Program, max_hops: int = 16):
    """
    Initializes the resolver.

    Args:
        program: The loaded program.
        max_hops: Bound on import / re-export chains.
    """
    self.program = program
    self.max_hops = max_hops
    self._indexes: Dict[str, ModuleIndex] = {}
    self._cache: Dict[Tuple[str, NodeKey], Resolution] = {}

  def index(self, module: SourceModule) -> ModuleIndex:
    """
    Returns (building once) the declaration index of a module.

    Args:
        module: The parsed module.

    Returns:
        ModuleIndex: Scopes and exports of the module.
    """
    cache_key = str(module.path)
    if cache_key not in self._indexes:
      self._indexes[cache_key] = _IndexBuilder(module).build()
    return self._indexes[cache_key]

  def lookup(self, name: str, node: Node, module: SourceModule) -> Optional[Binding]:
    """
    Finds the declaration of `name` visible at `node`, without following imports.

    Args:
        name: Identifier text.
        node: The use site.
        module: Module containing `node`.

    Returns:
        Optional[Binding]: The local declaration, if any.
    """
    idx = self.index(module)
    current: Optional[Node] = node
    while current is not None:
      scope = idx.scopes.get(node_key(current))
      if scope is not None:
        found = scope.get(name)
        if found is not None:
          return found
      current = current.parent
    return idx.module_scope.get(name)

  def module_binding(self, module: SourceModule, name: str) -> Optional[Binding]:
    """Module-level declaration of `name`, without following imports."""
    return self.index(module).module_scope.get(name)

  def resolve(self, identifier: Node, module: SourceModule) -> Resolution:
    """
    Resolves an identifier use to its originating declaration.

    Imports are followed into the exporting module; namespace imports resolve
    to the namespace binding itself.

    Args:
        identifier: An identifier (or shorthand property) node.
        module: Module containing the identifier.

    Returns:
        Resolution: The Binding, or Unresolvable.
    """
    cache_key = (str(module.path), node_key(identifier))
    if cache_key in self._cache:
      return self._cache[cache_key]

    name = text(identifier)
    local = self.lookup(name, identifier, module)
    result: Resolution
    if local is None:
      result = Unresolvable(f"Unresolved identifier '{name}'")
    else:
      result = self.follow(local)

    self._cache[cache_key] = result
    return result

  def resolve_reference(self, node: Node, module: SourceModule) -> Resolution:
    """
    Resolves an identifier or a `namespace.member` access.

    Args:
        node: identifier or member_expression node.
        module: Module containing the node.

    Returns:
        Resolution: The Binding, or Unresolvable.
    """
    if node.type in ("identifier", "shorthand_property_identifier"):
      return self.resolve(node, module)
    if node.type == "member_expression":
      obj = node.child_by_field_name("object")
      prop = node.child_by_field_name("property")
      if obj is not None and prop is not None and obj.type == "identifier":
        base = self.resolve(obj, module)
        if isinstance(base, Unresolvable):
          return base
        if isinstance(base, Binding) and base.is_namespace:
          return self.resolve_member(base, text(prop))
    return Unresolvable(f"Unsupported reference '{text(node)}'")

  def follow(self, binding: Binding, hops: int = 0) -> Resolution:
    """
    Follows an import binding to the exported declaration.

    Args:
        binding: Any binding.
        hops: Chain length so far.

    Returns:
        Resolution: Non-import bindings are returned unchanged.
    """
    if binding.kind != BindingKind.IMPORT or binding.is_namespace:
      if binding.is_namespace and binding.module is not None and binding.import_source is not None:
        target = self.program.import_target(binding.module, binding.import_source, binding.json_import)
        if isinstance(target, DataAsset):
          return _data_binding(binding.name, target)
        if target is None:
          return Unresolvable(f"External module '{binding.import_source}'")
      return binding

    if binding.module is None or binding.import_source is None:
      return Unresolvable(f"Import '{binding.name}' has no source")

    target = self.program.import_target(binding.module, binding.import_source, binding.json_import)
    return self.resolve_export(target, binding.import_name or "default", binding.import_source, hops + 1)

  def resolve_member(self, namespace: Binding, member: str) -> Resolution:
    """
    Resolves `ns.member` for a namespace import.

    Args:
        namespace: A namespace import binding.
        member: The accessed export name.

    Returns:
        Resolution: The exported Binding, or Unresolvable.
    """
    if namespace.module is None or namespace.import_source is None:
      return Unresolvable(f"'{namespace.name}' is not a namespace")
    target = self.program.import_target(namespace.module, namespace.import_source, namespace.json_import)
    return self.resolve_export(target, member, namespace.import_source)

  def resolve_export(self, target: Optional[ImportTarget], name: str, specifier: str, hops: int = 0) -> Resolution:
    """
    Resolves an exported name of a module or data asset.

    Args:
        target: The loaded module / asset (None for external modules).
        name: Export name (`default`, `*` or a named export).
        specifier: Specifier used to reach the target (for messages).
        hops: Chain length so far.

    Returns:
        Resolution: The exported Binding, or Unresolvable.
    """
    if hops > self.max_hops:
      return Unresolvable(f"Re-export chain through '{specifier}' is too deep")
    if target is None:
      return Unresolvable(f"External module '{specifier}'")

    if isinstance(target, DataAsset):
      if name in ("default", "*"):
        return _data_binding(name, target)
      if isinstance(target.value, dict) and name in target.value:
        return _data_binding(name, target)
      return Unresolvable(f"'{name}' is not a key of {target.path.name}")

    idx = self.index(target)

    if name == "*":
      return Binding(
        name="*",
        kind=BindingKind.IMPORT,
        mutability=Mutability.LOCKED,
        module=target,
        declaration=target.root,
        import_source=f"./{target.path.name}",
        import_name="*",
      )

    entry = idx.exports.get(name)
    if entry is not None:
      if entry.binding is not None:
        return entry.binding
      if entry.local_name is not None:
        local = idx.module_scope.get(entry.local_name)
        if local is None:
          return Unresolvable(f"'{entry.local_name}' is not declared in {target.path.name}")
        return self.follow(local, hops + 1)
      if entry.source is not None:
        inner = self.program.import_target(target, entry.source, entry.json_import)
        if entry.imported_name == "*":
          if isinstance(inner, DataAsset):
            return _data_binding(name, inner)
          if inner is None:
            return Unresolvable(f"External module '{entry.source}'")
          return Binding(
            name=name,
            kind=BindingKind.IMPORT,
            mutability=Mutability.LOCKED,
            module=target,
            declaration=target.root,
            import_source=entry.source,
            import_name="*",
            json_import=entry.json_import,
          )
        return self.resolve_export(inner, entry.imported_name or name, entry.source, hops + 1)

    if name != "default":
      for star_source, as_data in idx.star_exports:
        inner = self.program.import_target(target, star_source, as_data)
        found = self.resolve_export(inner, name, star_source, hops + 1)
        if isinstance(found, Binding):
          return found

    return Unresolvable(f"'{name}' is not exported by {target.path.name}")


def _data_binding(name: str, asset: DataAsset) -> Binding:
  return Binding(
    name=name,
    kind=BindingKind.DATA,
    mutability=Mutability.LOCKED,
    module=None,
    import_source=str(asset.path),
  )
