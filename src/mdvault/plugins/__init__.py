"""Bundled example plugins."""
