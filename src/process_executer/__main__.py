"""process-executer entry point.

Supports: python -m process_executer
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
