"""esview: filter, page and inspect Elasticsearch documents from the terminal."""

__version__ = "0.1.0"
