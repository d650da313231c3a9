"""Audio Transcriber - Transcription API service."""
