"""HTTP gateway in front of the completion service."""
