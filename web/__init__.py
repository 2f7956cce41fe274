"""Network surfaces: the Flask app and the websocket frame stream."""
