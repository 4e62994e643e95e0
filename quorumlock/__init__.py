"""
Quorum Lock

Client-side distributed mutual exclusion over N independent Redis servers
(quorum voting with clock-drift compensation and bounded retries), plus an
overlap-guard protocol that keeps a recurring job from being queued or run
more than once at the same time.
"""

__version__ = "1.0.0"
