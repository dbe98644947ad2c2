# File: ormgen/__main__.py
"""
ORMGen module entry point.

Allows running the generator directly via::

    python -m ormgen --schema schema.yaml --output ./generated

Delegates to the CLI entry point defined in ``ormgen.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from ormgen.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
