"""
relay-agent - a chat-driven research assistant that can act on its host.
"""

__version__ = "0.1.0"
