"""Shared helpers: logging, atomic writes, slugs, and text normalization."""
