"""
Command-line tools for the SMART backend services client.
"""
