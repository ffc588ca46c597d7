"""Quiz session domain services: scoring, the session store, the lifecycle
state machine and timers.

Imported by the Socket.IO gateway and the HTTP API, keeping transport
concerns separated from core quiz mechanics.
"""
