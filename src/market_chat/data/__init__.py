"""Bundled content filter rule sets."""
