"""Core shared pieces: the error taxonomy used by every layer of the stream agent."""
