"""Bridge a streaming chat API to command-line AI tools."""

__version__ = "0.1.0"
