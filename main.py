"""
Entry point — runs the modgraph CLI.

Usage:
    python main.py process-modules --seed-file ./data/seed-modules.txt
    python main.py --help
"""

from modgraph.cli import cli


if __name__ == "__main__":
    cli()
