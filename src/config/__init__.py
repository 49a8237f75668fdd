"""Typed settings and the input-key catalogue."""
