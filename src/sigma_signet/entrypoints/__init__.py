"""Entrypoints - HTTP surface of the relying party."""
