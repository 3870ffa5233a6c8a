"""Entry point for ``python -m wlangen``."""

from wlangen.cli import main

if __name__ == "__main__":
    main()
