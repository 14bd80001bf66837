"""Main entry point for ``python -m devspawn``."""

from devspawn.cli.main import main


if __name__ == "__main__":
    main()
