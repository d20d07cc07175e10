"""cloudsync: scheduled bidirectional sync between local folders and a shared WebDAV remote."""

__version__ = "1.0.0"
