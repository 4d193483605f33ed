"""Travel assistant: turn routing and session memory for a conversational agent."""

__version__ = "1.0.0"
