"""
Communication layer: message types, the agent registry, the chat hub and
the message router that fans inbound traffic out to its handlers.
"""
