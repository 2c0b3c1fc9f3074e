"""Command line interface for the Manager operator."""
