"""fetchvault: fetch remote URLs into object storage and hand out signed links."""

__version__ = "0.1.0"
