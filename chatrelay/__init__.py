"""
chatrelay - Streaming chat completion relay

Relays one streamed chat completion at a time from an OpenAI-compatible
provider, maps failures onto a closed error taxonomy and consumes the
stream on the client side with cooperative cancellation.
"""

__version__ = "1.0.0"
