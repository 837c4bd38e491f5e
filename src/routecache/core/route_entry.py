"""
Data structures representing the output of the route analysis.

This module defines the `RouteEntry` Pydantic model, one classified route of
the final report, in the shape consumed by deployment tooling.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from routecache.enums import HttpMethod, Verdict


class RouteEntry(BaseModel):
  """
  A single classified route.
  """

  model_config = ConfigDict(frozen=True)

  method: str = Field(..., description="Upper-case HTTP verb (GET, POST, PUT, DELETE, PATCH).")
  path: str = Field(..., description="Full path including all mount prefixes.")
  type: Verdict = Field(..., description="STATIC when the response is fixed at deploy time.")
  reason: Optional[str] = Field(None, description="Disqualifying construct, for DYNAMIC routes only.")

  @field_validator("method")
  @classmethod
  def validate_method(cls, v: str) -> str:
    """
    Normalizes and checks the verb.

    Args:
        v (str): Raw method name.

    Returns:
        str: The upper-case verb.

    Raises:
        ValueError: If the verb is not a recognized registration method.
    """
    if HttpMethod.from_member(v.lower()) is None:
      raise ValueError(f"Unsupported HTTP method '{v}'.")
    return v.upper()

  @field_validator("path")
  @classmethod
  def validate_path(cls, v: str) -> str:
    """Paths are absolute."""
    if not v.startswith("/"):
      raise ValueError(f"Route path must start with '/', got '{v}'.")
    return v

  @model_validator(mode="after")
  def check_reason(self) -> "RouteEntry":
    """
    Keeps `reason` consistent with the verdict.

    Raises:
        ValueError: If a STATIC entry carries a reason.
    """
    if self.type == Verdict.STATIC and self.reason is not None:
      raise ValueError("STATIC routes carry no reason.")
    return self

  @property
  def is_static(self) -> bool:
    """True for cacheable routes."""
    return self.type == Verdict.STATIC

  def to_dict(self) -> Dict[str, Any]:
    """
    Serializes to the downstream JSON shape.

    Returns:
        Dict[str, Any]: `method`, `path`, `type` and, for DYNAMIC routes, `reason`.
    """
    return self.model_dump(mode="json", exclude_none=True)
