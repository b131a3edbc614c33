"""CLI entrypoint for running stratum as a module."""

from stratum.cli import cli
from stratum.logging import setup_logging

if __name__ == "__main__":
    setup_logging()
    cli()
