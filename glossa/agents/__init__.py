"""Reference agent client that connects to the chat hub."""
