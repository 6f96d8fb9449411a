"""Shared configuration, errors and file helpers."""
