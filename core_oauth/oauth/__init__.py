"""OAuth 2.0 protocol engine: token codec, grant flows and dispatch."""
