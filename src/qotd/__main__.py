"""Allow `python -m qotd` as an alias for `qotd`."""

from qotd.cli.main import main

if __name__ == "__main__":
    main()
