"""
GenPept record retrieval through NCBI E-utilities.

Each confirmed positive is looked up with esearch to get its Entrez UID,
then the GenPept flat file is downloaded with efetch and stored as
``<records_dir>/<identifier>.gp``. Records already on disk are reused.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from arbitrator.clients.transport import NCBITransport
from arbitrator.core.constants import EUTILS_BASE_URL
from arbitrator.core.exceptions import ConversionError, ConversionFailure, TransportFailure
from arbitrator.core.io_utils import write_text_atomic
from arbitrator.models.jobs import ServiceClass

logger = logging.getLogger(__name__)

ESEARCH_URL = f"{EUTILS_BASE_URL}/esearch.fcgi"
EFETCH_URL = f"{EUTILS_BASE_URL}/efetch.fcgi"
RECORD_SUFFIX = ".gp"

_ID_TAG = re.compile(r"<Id>\s*(\w+)\s*</Id>")


@dataclass
class FetchReport:
    """Outcome of retrieving records for a set of identifiers.

    Attributes:
        written: Paths of records downloaded in this run
        reused: Paths of records already present before the run
        failures: One ConversionError per identifier that could not be stored
    """

    written: list[Path] = field(default_factory=list)
    reused: list[Path] = field(default_factory=list)
    failures: list[ConversionError] = field(default_factory=list)

    @property
    def failed_identifiers(self) -> list[str]:
        return [failure.identifier for failure in self.failures]


class EntrezRecordFetcher:
    """Downloads GenPept records for confirmed positives.

    Requests are paced as auxiliary API calls, the only class for which an
    NCBI API key raises the allowed rate.
    """

    def __init__(self, transport: NCBITransport, records_dir: Path):
        self.transport = transport
        self.records_dir = records_dir

    def record_path(self, identifier: str) -> Path:
        return self.records_dir / f"{identifier}{RECORD_SUFFIX}"

    def lookup_uid(self, identifier: str) -> str:
        """Resolve an accession or GI to its Entrez UID.

        Raises:
            ConversionError: If esearch returns nothing or no <Id> tag
        """
        params = {"db": "protein", "term": identifier, "usehistory": "n"}
        try:
            response = self.transport.get(ESEARCH_URL, params, ServiceClass.AUXILIARY_API)
        except TransportFailure as e:
            raise ConversionError(identifier, ConversionFailure.NO_INITIAL_RESPONSE) from e
        if not response.strip():
            raise ConversionError(identifier, ConversionFailure.NO_INITIAL_RESPONSE)

        match = _ID_TAG.search(response)
        if match is None:
            raise ConversionError(identifier, ConversionFailure.NO_ID_TAG_IN_INITIAL_RESPONSE)
        return match.group(1)

    def fetch_record(self, identifier: str) -> str:
        """Download the GenPept flat file for one identifier.

        Raises:
            ConversionError: If the lookup or the download fails
        """
        uid = self.lookup_uid(identifier)
        params = {"db": "protein", "id": uid, "rettype": "gp", "retmode": "text"}
        try:
            page = self.transport.get(EFETCH_URL, params, ServiceClass.AUXILIARY_API)
        except TransportFailure as e:
            raise ConversionError(identifier, ConversionFailure.NO_RECORD_PAGE) from e
        if not page.strip():
            raise ConversionError(identifier, ConversionFailure.NO_RECORD_PAGE)
        return page

    def store_record(self, identifier: str) -> Path:
        """Download and write one record, reusing an existing file.

        Raises:
            ConversionError: If the record cannot be retrieved or written
        """
        path = self.record_path(identifier)
        if path.exists() and path.stat().st_size > 0:
            return path

        page = self.fetch_record(identifier)
        try:
            write_text_atomic(path, page)
        except OSError as e:
            raise ConversionError(identifier, ConversionFailure.RECORD_NOT_WRITTEN) from e
        return path

    def fetch_all(self, identifiers: Iterable[str]) -> FetchReport:
        """Store records for every identifier, collecting failures.

        A failure for one identifier is logged and recorded; the remaining
        identifiers are still processed.
        """
        report = FetchReport()
        for identifier in sorted(set(identifiers)):
            path = self.record_path(identifier)
            if path.exists() and path.stat().st_size > 0:
                report.reused.append(path)
                continue
            try:
                report.written.append(self.store_record(identifier))
            except ConversionError as e:
                logger.warning("Record retrieval failed for %s: %s", identifier, e.reason.value)
                report.failures.append(e)

        logger.info(
            "Records: %d written, %d reused, %d failed",
            len(report.written),
            len(report.reused),
            len(report.failures),
        )
        return report
