"""
Reaper module.
Contains the stale-claim reaper that returns abandoned jobs to the queue.
"""

from job_engine.reaper.main import Reaper, run

__all__ = ["Reaper", "run"]
