"""il-sync: keep a local folder of Markdown documents in sync with a remote document store."""

__version__ = "0.1.0"
