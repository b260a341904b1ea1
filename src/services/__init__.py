"""Derivation and orchestration services used by handlers.

Services are imported by module path (``services.timeline_service``) so a
handler only loads the passes it serves.
"""
