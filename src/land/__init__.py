"""Resolve, cache and launch modules published on a deno.land-style registry."""

__version__ = "0.8.0"
