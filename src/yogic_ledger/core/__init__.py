"""Core configuration and domain constants."""
