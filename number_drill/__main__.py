from __future__ import annotations

from .app import run


def main() -> int:
    """Console entry point; also runs under ``python -m number_drill``."""
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
