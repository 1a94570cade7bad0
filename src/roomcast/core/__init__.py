"""Core configuration and security helpers."""
