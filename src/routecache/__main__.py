"""
Entry point for module execution (``python -m routecache``).

This module delegates execution to the CLI handler in ``routecache.cli.__main__``.
"""

import sys
from routecache.cli.__main__ import main

if __name__ == "__main__":
  sys.exit(main())
