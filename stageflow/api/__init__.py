"""HTTP surface for StageFlow."""
