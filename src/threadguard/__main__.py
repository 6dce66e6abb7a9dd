"""Entry point for `python -m threadguard` and `threadguard` CLI."""

from threadguard.cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
