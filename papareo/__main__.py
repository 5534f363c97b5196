"""Package entry point for ``python -m papareo``."""

import sys

if __name__ == "__main__":
    from papareo.cli import main
    sys.exit(main())
