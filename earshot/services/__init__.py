"""Service layer for earshot."""

from .recognizer import SpeechRecognizer

__all__ = ['SpeechRecognizer']
