"""
Recurring job worker.
"""
