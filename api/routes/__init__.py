"""API routers: chat, conversations and realtime delivery."""
