"""Core engine components for StageFlow."""
