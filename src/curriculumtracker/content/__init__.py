"""Bundled curriculum documents."""
