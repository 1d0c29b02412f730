"""
Core screening engine: request pacing, parsing, job coordination,
classification and checkpointing.
"""
