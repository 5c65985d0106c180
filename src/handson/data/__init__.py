"""Packaged template catalog."""
