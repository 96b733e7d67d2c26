"""Scheduled database/config backup agent with rsync replication."""

__version__ = "0.1.0"
