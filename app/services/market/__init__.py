"""
Upstream market feed: HTTP client, payload transformer and freshness gate.
"""
