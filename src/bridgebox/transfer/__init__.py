"""Transfer orchestration: tokens, uploads, downloads and events."""
