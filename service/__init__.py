"""
Emboditrust HTTP service: application wiring, configuration and auth.
"""
