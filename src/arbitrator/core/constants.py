"""
Constants used throughout the arbitrator package.

Centralizes service URLs, protocol markers, file names and default
thresholds so they stay consistent across clients, parsers and the pipeline.
"""

from __future__ import annotations

# =============================================================================
# NCBI Service Endpoints
# =============================================================================

BLAST_URL = "https://blast.ncbi.nlm.nih.gov/Blast.cgi"
CD_SEARCH_URL = "https://www.ncbi.nlm.nih.gov/Structure/bwrpsb/bwrpsb.cgi"
EUTILS_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"

# Identifies the client to NCBI so they can get in touch about request rates
NCBI_TOOL_NAME = "arbitrator"

# =============================================================================
# Rate Limits (milliseconds between requests)
#
# BLAST URL API: one request per 10 s is the documented ceiling, 5 s has
# worked reliably. API keys are not supported by the BLAST URL API, so the
# keyed interval is the same.
# RID polls: "Do not poll for any single RID more often than once a minute."
# E-utilities: 3 requests/s without key, 10 requests/s with key.
# =============================================================================

MIN_MS_BETWEEN_SEARCH_REQUESTS = 5000
MIN_MS_BETWEEN_SEARCH_REQUESTS_APIKEY = 5000
MIN_MS_BETWEEN_POLLS = 80000
MIN_MS_BETWEEN_POLLS_APIKEY = 80000
MIN_MS_BETWEEN_EUTILS_REQUESTS = 400
MIN_MS_BETWEEN_EUTILS_REQUESTS_APIKEY = 130

# =============================================================================
# Search Defaults
# =============================================================================

# Large hit lists keep valid members from being cut off at the list limit
DEFAULT_HIT_LIST_SIZE = 100_000

# Batch CD-Search accepts 4000 proteins, but GET URLs fail above ~250 ids (HTTP 414)
DEFAULT_BATCH_SIZE = 250

DEFAULT_MAX_POLL_ATTEMPTS = 180

CD_SEARCH_EVALUE = 0.01
CD_SEARCH_MAX_HITS = 10

# =============================================================================
# Protocol Markers
# =============================================================================

QBLAST_INFO_BEGIN = "QBlastInfoBegin"
QBLAST_INFO_END = "QBlastInfoEnd"

# A tabular BLAST page is complete once a query header has been written
BLAST_RESULTS_READY_MARKER = "# Query:"

CD_SEARCH_STATUS_READY = 0
CD_SEARCH_STATUS_RUNNING = 3

# =============================================================================
# First-stage Tabular Format
# =============================================================================

FIELDS_HEADER_PREFIX = "# Fields: "
EXPECTED_FIELDS_HEADER = (
    "# Fields: query acc.ver, subject acc.ver, % identity, alignment length, "
    "mismatches, gap opens, q. start, q. end, s. start, s. end, evalue, "
    "bit score, % positives"
)
MIN_HIT_FIELDS = 13
SUBJECT_FIELD_INDEX = 1
EVALUE_FIELD_INDEX = 11

# =============================================================================
# Work Directory Layout
# =============================================================================

DEFAULT_WORK_DIR = "work"
RESULT_FILE_PREFIX = "blast_hits_"
POSITIVE_CHECKPOINT_NAME = "PositiveCheckpoint.txt"
NEGATIVE_CHECKPOINT_NAME = "NegativeCheckpoint.txt"

CURATED_DOMAIN_PREFIX = "cd"
