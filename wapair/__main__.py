"""Allow ``python -m wapair``."""

from wapair.cli import run

if __name__ == "__main__":
    run()
