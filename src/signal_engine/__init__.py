"""
Signal decision engine.

Aggregates asynchronously arriving signal payloads per instrument into a
context snapshot and turns that snapshot plus live market metrics into an
auditable EXECUTE / WAIT / SKIP decision.
"""

__version__ = "2.5.0"

ENGINE_VERSION = __version__
