"""uploadgate - HTTP facade over an object store's multipart-upload protocol."""

__version__ = "0.1.0"
