"""earshot - real-time speech capture, endpointing and transcription."""

__version__ = "0.1.0"
