"""
Report registry for Health Companion.

Records metadata of uploaded report files in the ``medicalReports``
collection and serves each owner's most recent reports, either as a
point-in-time read or as a live feed of full snapshots.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from pydantic import ValidationError

from health_companion.config import settings
from health_companion.core.document_store import Document, DocumentStore
from health_companion.core.errors import UploadError, WriteError
from health_companion.core.signals import Unsubscribe
from health_companion.models.schemas import MedicalReport, ReportMetadata, UserSession
from health_companion.services.upload_relay import UploadRelay
from health_companion.utils.logger import get_logger

logger = get_logger("report_registry")

ReportSnapshot = Tuple[MedicalReport, ...]


@dataclass
class UploadOutcome:
    """Result of the upload-then-record action."""

    accepted: bool
    message: str
    report: Optional[MedicalReport] = None


def to_reports(documents: Iterable[Document], owner_id: str) -> ReportSnapshot:
    """Convert stored documents, dropping malformed or foreign records."""
    reports = []
    for document in documents:
        try:
            report = MedicalReport.model_validate(document)
        except ValidationError as exc:
            logger.warning("Skipping malformed report record", error=str(exc))
            continue
        if report.owner_id != owner_id:
            logger.warning("Dropping report of another owner", owner_id=owner_id)
            continue
        reports.append(report)
    return tuple(reports)


class ReportRegistry:
    """
    Owner-scoped access to report metadata.

    Records are created once and never updated or deleted here. A
    failure to record after a successful upload leaves the stored file
    orphaned; that inconsistency is reported, not reconciled.
    """

    NO_FILE_MESSAGE = "Please select a file to upload."
    NOT_SIGNED_IN_MESSAGE = "Error: You must be logged in to upload reports."
    SUCCESS_MESSAGE = "File uploaded successfully and data saved!"

    def __init__(self, store: DocumentStore, collection: Optional[str] = None):
        self.store = store
        self.collection = collection or settings.reports_collection

    def record_upload(
        self,
        session: UserSession,
        metadata: ReportMetadata
    ) -> MedicalReport:
        """
        Write the metadata record of a stored file.

        The owner is always the session's user.

        Raises:
            WriteError: The database rejected the record
        """
        report = MedicalReport(
            owner_id=session.id,
            **metadata.model_dump(),
        )
        self.store.add(self.collection, report.model_dump(by_alias=True))

        logger.info(
            "Report recorded",
            owner_id=session.id,
            file_name=report.file_name,
            file_size=report.file_size,
        )
        return report

    async def upload_report(
        self,
        session: Optional[UserSession],
        relay: UploadRelay,
        data: Optional[bytes],
        file_name: str,
        file_type: str = "",
        description: str = "",
    ) -> UploadOutcome:
        """
        Store a file, then record its metadata.

        Returns:
            UploadOutcome; rejected without any network call when no
            file or no session is present

        Raises:
            UploadError: The object store failed
            WriteError: The file was stored but the record was not
        """
        if not data:
            return UploadOutcome(accepted=False, message=self.NO_FILE_MESSAGE)
        if session is None:
            return UploadOutcome(accepted=False, message=self.NOT_SIGNED_IN_MESSAGE)

        try:
            stored = await relay.upload(data, file_name)
        except UploadError as exc:
            raise UploadError(f"Upload failed: {exc.message}") from exc

        metadata = ReportMetadata(
            file_name=file_name,
            file_type=file_type,
            file_size=len(data),
            download_url=stored.url,
            description=description,
        )
        try:
            report = self.record_upload(session, metadata)
        except WriteError as exc:
            logger.error(
                "Stored file left without a record",
                owner_id=session.id,
                public_id=stored.public_id,
            )
            raise WriteError(f"Upload failed: {exc.message}") from exc

        return UploadOutcome(accepted=True, message=self.SUCCESS_MESSAGE, report=report)

    def recent_reports(self, owner_id: str, limit: Optional[int] = None) -> ReportSnapshot:
        """Most recent reports of an owner, newest first."""
        documents = self.store.query(
            self.collection,
            owner_id,
            order_by="uploadedAt",
            descending=True,
            limit=limit or settings.report_context_limit,
        )
        return to_reports(documents, owner_id)

    def watch_recent_reports(
        self,
        owner_id: str,
        callback: Callable[[ReportSnapshot], None],
        limit: Optional[int] = None,
    ) -> Unsubscribe:
        """
        Live variant of ``recent_reports``.

        Every callback receives the complete refreshed list, which
        replaces whatever the subscriber held before.
        """
        return self.store.watch(
            self.collection,
            owner_id,
            order_by="uploadedAt",
            descending=True,
            limit=limit or settings.report_context_limit,
            callback=lambda documents: callback(to_reports(documents, owner_id)),
        )
