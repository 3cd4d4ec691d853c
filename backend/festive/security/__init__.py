"""Process-level security primitives: encryption, rate limiting and event logging."""
