"""HTTP API: REST routers, workflow callbacks and the WebSocket relay."""
