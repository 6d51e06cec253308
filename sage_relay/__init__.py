"""
Sage Relay - pairs two participants into a moderated conversation and lets an
automated facilitator voice step in when the conversation calls for it.
"""

__version__ = "1.0.0"
