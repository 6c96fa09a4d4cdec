"""
Package entry point.

Allows running the application via:

    python -m kosengrade

This simply forwards execution to kosengrade.cli.main().
"""

from kosengrade.cli import main

if __name__ == "__main__":
    main()
