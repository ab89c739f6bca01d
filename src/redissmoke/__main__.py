"""Module entrypoint for `python -m redissmoke`."""

from redissmoke.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
