"""HTTP application."""
