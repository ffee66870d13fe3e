"""Command line interface for sis-feed."""
