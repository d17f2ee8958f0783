"""Pydantic schemas for data that leaves the process."""
