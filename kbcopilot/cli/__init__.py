"""Command-line tools for kbcopilot.

- ``python -m kbcopilot.cli ingest PATH`` -- ingest a directory, zip or file
- ``python -m kbcopilot.cli ask "question"`` -- ask the knowledge base
- ``python -m kbcopilot.cli draft --purpose ... --point ...`` -- draft a letter
- ``python -m kbcopilot.cli stats`` -- store and audit counts

Every command prints a JSON document on stdout and exits non-zero on failure.
"""
