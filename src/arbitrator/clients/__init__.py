"""
API clients for NCBI services.

Provides the rate-limited HTTP transport, BLAST and Batch CD-Search job
clients, and the E-utilities record fetcher.
"""

from arbitrator.clients.base import AsyncJobClient
from arbitrator.clients.blast import BlastJobClient
from arbitrator.clients.cdsearch import CDSearchClient
from arbitrator.clients.entrez import EntrezRecordFetcher, FetchReport
from arbitrator.clients.transport import NCBITransport

__all__ = [
    "AsyncJobClient",
    "BlastJobClient",
    "CDSearchClient",
    "EntrezRecordFetcher",
    "FetchReport",
    "NCBITransport",
]
