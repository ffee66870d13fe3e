"""Configuration management for sis-feed."""
