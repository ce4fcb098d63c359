"""Shared logging helpers for KashflowSync."""
