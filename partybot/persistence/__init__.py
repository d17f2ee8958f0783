"""Durable storage for active parties."""
