"""
OTA Updater - over-the-air update orchestration engine.

This package decides whether a newer version of an installed application is
available, drives the per-track update life cycle (check, consent, fetch,
activate/install, confirm or roll back) and keeps durable local version state
for the two update tracks: full package replacement and content bundle swap.
"""

__version__ = "0.1.0"
