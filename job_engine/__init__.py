"""
Durable Job Queue Engine

A database-backed job queue: producers enqueue typed jobs, workers atomically
claim, start, complete or fail them, failed jobs are retried up to a limit,
and abandoned claims are swept back to pending.
"""

__version__ = "1.0.0"
