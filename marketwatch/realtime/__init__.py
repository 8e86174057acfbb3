"""
Background runtime for the pipeline.

Runs the market watcher, the analysis workers and the stale-job
reaper as independent interval loops.
"""
