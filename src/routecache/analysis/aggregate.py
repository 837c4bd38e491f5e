"""
Result Aggregation.

Collects route entries in discovery order and returns them ordered by path.
Duplicate (method, path) pairs are kept: registering the same route twice is
a configuration smell worth surfacing.
"""

from typing import List

from routecache.core.route_entry import RouteEntry


class ResultAggregator:
  """
  Append-only collection of RouteEntry records.
  """

  def __init__(self) -> None:
    self._entries: List[RouteEntry] = []

  def add(self, entry: RouteEntry) -> None:
    """
    Appends an entry.

    Args:
        entry: The classified route.
    """
    self._entries.append(entry)

  def __len__(self) -> int:
    return len(self._entries)

  def results(self) -> List[RouteEntry]:
    """
    Returns the entries sorted by path.

    The sort is stable, so entries sharing a path keep discovery order.

    Returns:
        List[RouteEntry]: A new list; the collected entries are not modified.
    """
    return sorted(self._entries, key=lambda entry: entry.path)
