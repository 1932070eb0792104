"""Terminal client for chatting with local Ollama models."""

__version__ = "0.4.0"
