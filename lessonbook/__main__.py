"""
Package entry point.

Allows running the application via:

    python -m lessonbook

This simply forwards execution to lessonbook.cli.main().
"""

from lessonbook.cli import main

if __name__ == "__main__":
    main()
