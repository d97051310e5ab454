"""Searchable local archive of Mastodon bookmarks."""

__version__ = "0.1.0"
