"""
Retention Sweep — Permanent destruction of secrets past their date.

A secret is eligible once its destroy-not-before custom metadata date is
today or earlier (UTC). Eligible secrets lose their whole history, in the
secret tree and in the mirror tree, on every replica.

Dry run is the default: candidates are reported, nothing is written.
"""

from __future__ import annotations

import logging
from typing import Optional

from dateutil import parser as date_parser

from ..backend.replicas import ReplicaSet
from ..errors import KVMirrorError
from ..models.secret import SweepReport
from ..persistence.ledger import OperationLedger
from .clock import Clock, utc_now
from .lifecycle import DESTROY_NOT_BEFORE_KEY
from .paths import DEFAULT_MIRROR_PREFIX, is_mirror_path, mirror_path

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Finds and destroys secrets whose scheduled destruction date has passed.

    Usage:
        sweeper = RetentionSweeper(replicas)
        report = sweeper.clean(dry_run=False)
        if not report.ok:
            raise SweepFailed(report.errors)
    """

    def __init__(
        self,
        replicas: ReplicaSet,
        mirror_prefix: str = DEFAULT_MIRROR_PREFIX,
        clock: Optional[Clock] = None,
        ledger: Optional[OperationLedger] = None,
    ):
        self.replicas = replicas
        self.mirror_prefix = mirror_prefix
        self.clock = clock or utc_now
        self.ledger = ledger

    def find_candidates(self, root: str = "", report: Optional[SweepReport] = None) -> SweepReport:
        """Fill report.candidates (and report.errors for unreadable paths)."""
        if report is None:
            report = SweepReport()
        today = self.clock().date()

        for path in self.replicas.walk(root):
            if is_mirror_path(path, self.mirror_prefix):
                continue

            try:
                metadata = self.replicas.read_metadata(path)
            except KVMirrorError as e:
                report.errors[path] = str(e)
                continue
            if metadata is None:
                continue

            raw = metadata.custom_metadata.get(DESTROY_NOT_BEFORE_KEY)
            if not raw:
                continue

            try:
                not_before = date_parser.isoparse(raw).date()
            except ValueError:
                report.errors[path] = f"invalid {DESTROY_NOT_BEFORE_KEY} value {raw!r}"
                continue

            if not_before <= today:
                report.candidates.append(path)

        return report

    def clean(self, root: str = "", dry_run: bool = True) -> SweepReport:
        report = self.find_candidates(root, SweepReport(dry_run=dry_run))

        for path in report.candidates:
            if dry_run:
                logger.info(f"[dry run] {path} would be destroyed", extra={"secret_path": path})
                continue

            try:
                self.replicas.destroy_metadata(path)
                self.replicas.destroy_metadata(mirror_path(path, self.mirror_prefix))
            except KVMirrorError as e:
                logger.error(f"Failed to destroy {path}: {e}", extra={"secret_path": path})
                report.errors[path] = str(e)
                continue

            report.destroyed.append(path)
            logger.info(f"Destroyed {path}", extra={"secret_path": path})
            if self.ledger is not None:
                self.ledger.emit("secret_destroyed", path)

        logger.info(
            f"Retention sweep: {len(report.candidates)} candidate(s), "
            f"{len(report.destroyed)} destroyed, {len(report.errors)} error(s)"
        )
        return report
