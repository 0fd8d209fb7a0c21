"""Ports, per-key locking and the engine state container."""
