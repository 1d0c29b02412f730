"""
Arbitrator: two-stage screening of protein families against NCBI services.

Candidate proteins are collected with a broad BLASTP search against nr for
each seed, then confirmed with Batch CD-Search domain hits. Completed
searches and calls are checkpointed so a stopped run resumes where it left
off.
"""

__version__ = "0.1.0"
__author__ = "Arbitrator Team"
