"""
Cold-start initialization.

A fresh process runs, at most once at a time: pool creation, schema creation,
reference-data seeding. See `coordinator.py` for the per-process state machine.
"""
