"""Sandboxer admin CLI."""
