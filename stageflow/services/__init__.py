"""Request-domain services for StageFlow."""
