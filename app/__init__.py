"""Audio Transcriber - Core application modules.

Provides:
- Job model, state machine and repository (SQLite via SQLAlchemy)
- Job processor (segment -> transcribe -> assemble -> cleanup)
- Huey queue wiring and retention sweeps
"""

__version__ = "0.1.0"
