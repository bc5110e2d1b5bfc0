"""Reaction correlation protocol: annotation codec, listeners, prompt lifecycle."""
