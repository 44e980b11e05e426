"""
IntelliDoc - Voice Engine
=========================
Read-aloud, dictation and voice commands for the IntelliDoc document
reader.

Version: 0.3.0
"""

__version__ = "0.3.0"
