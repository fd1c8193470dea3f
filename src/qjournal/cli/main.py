"""QJournal CLI main entry point."""

import click

from qjournal import __version__
from qjournal.cli.commands import analyze_command


@click.group()
@click.version_option(version=__version__)
def main():
    """QJournal - Trade Journal Analytics"""
    pass


# Register commands
main.add_command(analyze_command)


if __name__ == "__main__":
    main()
