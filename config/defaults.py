"""Default pipeline settings."""

DEFAULTS = {
    "model": "claude-sonnet-4-5-20250929",
    "max_tokens": 16384,
    "request_timeout": 120,     # seconds per model call
    "default_framework": "playwright",
    "app_origin": "localhost:3000",
    "session_ttl": 3600,        # expire sessions after 1 hour
    "max_sessions": 50,         # prevent unbounded memory growth
    "max_file_bytes": 200_000,  # skip larger files when collecting a project
    "ignored_dirs": [".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"],
}
