"""Helpers for the meme server: file scanning, image loading and favorites."""
