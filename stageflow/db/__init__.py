"""Database layer for StageFlow."""
