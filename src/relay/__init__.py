"""Per-call relay between Twilio Media Streams and the voice-agent socket.

One ``Session`` per telephony socket decides what happens; ``MediaStreamBridge``
performs the I/O it asks for against the telephony socket and the ``AgentLink``.
"""
