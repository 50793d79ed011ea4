"""Allow ``python -m overlay_sync STATE_DIR``."""

from .main import cli

if __name__ == "__main__":
    cli()
