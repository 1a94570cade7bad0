"""HTTP and websocket API package."""
