"""Chat templates, model descriptors and the inference runtime interface."""
