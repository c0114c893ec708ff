"""Allow ``python -m tlsfetch``."""

from __future__ import annotations

from tlsfetch.cli.main import main

if __name__ == "__main__":
    main()
