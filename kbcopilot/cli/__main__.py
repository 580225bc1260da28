"""Allow ``python -m kbcopilot.cli`` execution."""

from kbcopilot.cli.copilot import run

run()
