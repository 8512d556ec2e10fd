"""
relaybot - relays chat messages to an automated responder.
"""

__version__ = "0.1.0"
__logo__ = "📡"
