"""Core EPUB processing."""
