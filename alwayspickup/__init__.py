"""
AlwaysPickup - Conversational Calendar Assistant
=================================================

Answers phone calls through a hosted voice AI and lets the caller manage a
Google Calendar with natural-language commands.

Modules:
- core: Configuration, logging, error handling
- auth: Encrypted OAuth token storage
- conversation: Per-call context tracking and reference resolution
- tools: Calendar gateway and the tool contracts exposed to the AI session
"""

__version__ = "1.0.0"
__author__ = "AlwaysPickup Project"
