"""Provider router for multi-backend LLM assistants."""

__version__ = "0.1.0"
