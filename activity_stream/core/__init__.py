"""
Stream client internals: inbound message handling and transports.
"""
