"""
Shared infrastructure: configuration, logging and exceptions.
"""
