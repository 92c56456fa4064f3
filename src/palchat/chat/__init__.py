"""Chat history models and derivation."""
