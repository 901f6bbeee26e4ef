"""Removal operations run against the mounted image.

Each operation returns a RemovalReport; individual item failures are
logged and counted rather than raised.
"""
