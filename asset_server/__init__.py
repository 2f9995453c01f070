"""Asset registry server: watched directories exposed as a JSON registry over HTTP."""
