"""Allow running the extension host CLI as a module: python -m exthost."""

import sys

from exthost.runner import main

if __name__ == "__main__":
    sys.exit(main())
