"""Push channel transports, snapshot providers and feed projection."""
