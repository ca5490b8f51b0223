"""Application entrypoints: batch review, session-end hook, and CLI."""
