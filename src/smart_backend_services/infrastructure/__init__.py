"""
Network-facing collaborators: HTTP transport, discovery and token exchange.
"""
