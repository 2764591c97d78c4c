"""Shared configuration, errors and numeric helpers."""
