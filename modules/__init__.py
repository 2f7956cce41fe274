"""Clock, display and messaging modules registered with the core."""
