"""Shared helpers used across gralph modules."""
