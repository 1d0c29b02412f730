"""
Checkpointing of positive and negative calls.

Calls are written to two identifier lists in the work directory before each
full confirmation batch and once more at the end of classification. A
restarted run loads them so every group with a checkpointed member is
classified immediately, without another confirmation search.
"""

from __future__ import annotations

import logging
from pathlib import Path

from arbitrator.core.constants import (
    NEGATIVE_CHECKPOINT_NAME,
    POSITIVE_CHECKPOINT_NAME,
    RESULT_FILE_PREFIX,
)
from arbitrator.core.io_utils import read_identifier_list, write_identifier_list
from arbitrator.models.hits import CallSet

logger = logging.getLogger(__name__)


class CheckpointStore:
    """
    Persists a CallSet under a work directory.

    Files:
        <work_dir>/PositiveCheckpoint.txt
        <work_dir>/NegativeCheckpoint.txt

    Each file is replaced atomically, so a crash leaves either the previous
    or the new version of a list on disk.
    """

    def __init__(self, work_dir: Path):
        self.work_dir = work_dir

    @property
    def positive_path(self) -> Path:
        return self.work_dir / POSITIVE_CHECKPOINT_NAME

    @property
    def negative_path(self) -> Path:
        return self.work_dir / NEGATIVE_CHECKPOINT_NAME

    def exists(self) -> bool:
        return self.positive_path.exists() or self.negative_path.exists()

    def load(self) -> CallSet:
        """
        Load checkpointed calls. Missing files load as empty sets.

        Raises:
            ClassificationError: If an identifier is in both lists
        """
        call_set = CallSet(
            positive=read_identifier_list(self.positive_path),
            negative=read_identifier_list(self.negative_path),
        )
        if len(call_set):
            logger.info(
                "Loaded checkpoint: %d positive, %d negative calls",
                len(call_set.positive),
                len(call_set.negative),
            )
        return call_set

    def save(self, call_set: CallSet) -> None:
        """Write both call lists, sorted."""
        write_identifier_list(self.positive_path, call_set.positive)
        write_identifier_list(self.negative_path, call_set.negative)
        logger.debug(
            "Checkpointed %d positive and %d negative calls",
            len(call_set.positive),
            len(call_set.negative),
        )

    def clear(self) -> int:
        """
        Remove checkpoints and cached first-stage results.

        Returns:
            Number of files removed
        """
        removed = 0
        targets = [self.positive_path, self.negative_path]
        if self.work_dir.is_dir():
            targets.extend(self.work_dir.glob(f"{RESULT_FILE_PREFIX}*"))
        for path in targets:
            if path.is_file():
                path.unlink()
                removed += 1
        logger.info("Cleared %d checkpoint and cached result file(s) from %s", removed, self.work_dir)
        return removed
