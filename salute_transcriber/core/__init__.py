"""Core result processing modules.

WHY: The recognition result is a provider-shaped tree; the UI and CLI want
plain text. Turning one into the other is pure logic with no I/O, so it
lives apart from the HTTP client.

HOW: normalizer.py walks a parsed RecognitionResult and renders lines.

RULES:
- No network or file access in this package
"""
