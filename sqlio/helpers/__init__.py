"""Helper library for sqlio."""
