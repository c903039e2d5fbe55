"""
Stream Client Components.

Organized into domain-specific modules:
- core/       - Constants
- resilience/ - Reconnection policy (backoff, full refresh)
- events/     - Event value object and dispatcher
"""
