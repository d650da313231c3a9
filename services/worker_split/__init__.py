"""Audio Transcriber - Split worker (ffmpeg segmenter)."""
