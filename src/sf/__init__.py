"""sis-feed: snapshot synchronization of SIS extract files."""

__version__ = "0.1.0"
