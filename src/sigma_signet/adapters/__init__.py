"""Adapters for SIGMA, persistence and the database."""
