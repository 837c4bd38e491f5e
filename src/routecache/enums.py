"""
Enumerations for routecache.

This module defines the standard enumerations shared by the analysis passes
and the report models.
"""

from enum import Enum
from typing import Optional


class Verdict(str, Enum):
  """
  Cacheability classification of a single route.

  STATIC routes produce a response identical for every request and may be
  cached at the CDN. Anything that cannot be proven STATIC is DYNAMIC.
  """

  STATIC = "STATIC"
  DYNAMIC = "DYNAMIC"


class Mutability(str, Enum):
  """
  Assignment class of a binding, decided by its declaration form.
  """

  LOCKED = "locked"  # const, import, data asset
  UNLOCKED = "unlocked"  # let, var, parameters, function declarations


class BindingKind(str, Enum):
  """
  Declaration form that introduced a binding.
  """

  VARIABLE = "variable"
  FUNCTION = "function"
  CLASS = "class"
  PARAMETER = "parameter"
  IMPORT = "import"
  DATA = "data"
  DEFAULT_EXPORT = "default_export"


class HttpMethod(str, Enum):
  """
  Router methods recognized as route registrations.
  The value is the method name as written on the router object.
  """

  GET = "get"
  POST = "post"
  PUT = "put"
  DELETE = "delete"
  PATCH = "patch"

  @classmethod
  def from_member(cls, name: str) -> Optional["HttpMethod"]:
    """Maps a router member name (e.g. `get`) to the verb, or None."""
    try:
      return cls(name)
    except ValueError:
      return None
