"""Allow ``python -m resequencer``."""

from resequencer.cli import app

app()
