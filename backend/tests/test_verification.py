import pytest

from compliance_docs.config import settings
from compliance_docs.errors import BadRequestError, InvalidTransitionError, NotFoundError
from compliance_docs.models.document import DocumentRecord
from compliance_docs.schemas.entity import DriverRef
from compliance_docs.services.upload_service import IncomingFile
from compliance_docs.services.verification_service import (
    VerificationRequest,
    VerificationStateMachine,
    allowed_targets,
)

from conftest import DRIVER_ID, OFFICER_ID


async def _upload(orchestrator, document_type="driver_license"):
    ack = await orchestrator.upload(
        DriverRef(DRIVER_ID), document_type, IncomingFile("scan.pdf", b"%PDF-1.7 scan"), OFFICER_ID
    )
    return ack.id


class TestVerification:
    @pytest.mark.asyncio
    async def test_approve_sets_verifier_and_time(self, orchestrator, verification, broker, db):
        doc_id = await _upload(orchestrator)

        result = await verification.verify(
            VerificationRequest(doc_id, "approved", comments="Clear scan"), OFFICER_ID
        )

        assert result.verification_status == "approved"
        assert result.verified_by == OFFICER_ID
        assert result.verified_at is not None
        assert result.comments == "Clear scan"
        assert result.verified_by_user.email == "grace.nkem@transport.example"

        record = db.get(DocumentRecord, doc_id)
        assert record.verification_status == "approved"
        assert record.verified_at == result.verified_at

        events = broker.routed(settings.verified_routing_key)
        assert [e["payload"]["documentId"] for e in events] == [doc_id]
        assert events[0]["payload"]["status"] == "approved"

    @pytest.mark.asyncio
    async def test_reject_without_reason_is_accepted(self, orchestrator, verification, broker):
        doc_id = await _upload(orchestrator)

        result = await verification.verify(VerificationRequest(doc_id, "rejected"), OFFICER_ID)

        assert result.verification_status == "rejected"
        assert result.rejection_reason is None
        assert len(broker.routed(settings.rejected_routing_key)) == 1

    @pytest.mark.asyncio
    async def test_reason_only_stored_on_rejection(self, orchestrator, verification):
        approved = await _upload(orchestrator)
        rejected = await _upload(orchestrator)

        a = await verification.verify(
            VerificationRequest(approved, "approved", rejection_reason="ignored"), OFFICER_ID
        )
        r = await verification.verify(
            VerificationRequest(rejected, "rejected", rejection_reason="Document expired"), OFFICER_ID
        )
        assert a.rejection_reason is None
        assert r.rejection_reason == "Document expired"

    @pytest.mark.asyncio
    async def test_metadata_is_merged(self, orchestrator, verification):
        ack = await orchestrator.upload(
            DriverRef(DRIVER_ID), "driver_license", IncomingFile("a.pdf", b"x"), OFFICER_ID,
            metadata={"license_number": "DL-0042"},
        )
        result = await verification.verify(
            VerificationRequest(ack.id, "approved", metadata={"checked_against": "registry"}), OFFICER_ID
        )
        assert result.metadata["license_number"] == "DL-0042"
        assert result.metadata["checked_against"] == "registry"

    @pytest.mark.asyncio
    async def test_back_to_pending_is_refused(self, orchestrator, verification, broker):
        doc_id = await _upload(orchestrator)
        with pytest.raises(InvalidTransitionError):
            await verification.verify(VerificationRequest(doc_id, "pending"), OFFICER_ID)

        await verification.verify(VerificationRequest(doc_id, "approved"), OFFICER_ID)
        with pytest.raises(InvalidTransitionError) as exc_info:
            await verification.verify(VerificationRequest(doc_id, "pending"), OFFICER_ID)
        assert exc_info.value.current == "approved"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_redecision_allowed_by_default(self, orchestrator, verification):
        doc_id = await _upload(orchestrator)
        await verification.verify(VerificationRequest(doc_id, "approved"), OFFICER_ID)
        result = await verification.verify(
            VerificationRequest(doc_id, "rejected", rejection_reason="Forgery suspected"), OFFICER_ID
        )
        assert result.verification_status == "rejected"
        assert result.rejection_reason == "Forgery suspected"

    @pytest.mark.asyncio
    async def test_approval_clears_earlier_rejection_reason(self, orchestrator, verification):
        doc_id = await _upload(orchestrator)
        await verification.verify(
            VerificationRequest(doc_id, "rejected", rejection_reason="Blurry scan"), OFFICER_ID
        )

        result = await verification.verify(VerificationRequest(doc_id, "approved"), OFFICER_ID)

        assert result.verification_status == "approved"
        assert result.rejection_reason is None

    @pytest.mark.asyncio
    async def test_redecision_can_be_disabled(self, orchestrator, repository, publisher, validator, db):
        strict = VerificationStateMachine(repository, publisher, validator, allow_redecision=False)
        doc_id = await _upload(orchestrator)
        await strict.verify(VerificationRequest(doc_id, "rejected"), OFFICER_ID)

        with pytest.raises(InvalidTransitionError):
            await strict.verify(VerificationRequest(doc_id, "approved"), OFFICER_ID)
        assert db.get(DocumentRecord, doc_id).verification_status == "rejected"

    def test_allowed_targets(self):
        assert allowed_targets("pending", False) == ("approved", "rejected")
        assert allowed_targets("approved", True) == ("approved", "rejected")
        assert allowed_targets("approved", False) == ()
        assert "pending" not in allowed_targets("rejected", True)

    @pytest.mark.asyncio
    async def test_unknown_status(self, orchestrator, verification):
        doc_id = await _upload(orchestrator)
        with pytest.raises(BadRequestError, match="Invalid verification status"):
            await verification.verify(VerificationRequest(doc_id, "maybe"), OFFICER_ID)

    @pytest.mark.asyncio
    async def test_missing_document(self, verification):
        with pytest.raises(NotFoundError):
            await verification.verify(VerificationRequest("nope", "approved"), OFFICER_ID)

    @pytest.mark.asyncio
    async def test_event_failure_keeps_decision(self, orchestrator, verification, broker, db):
        doc_id = await _upload(orchestrator)
        broker.fail_on(settings.verified_routing_key)

        with pytest.raises(BadRequestError, match="Failed to publish verification event"):
            await verification.verify(VerificationRequest(doc_id, "approved"), OFFICER_ID)
        assert db.get(DocumentRecord, doc_id).verification_status == "approved"


class TestBatchVerification:
    @pytest.mark.asyncio
    async def test_missing_ids_are_reported_not_raised(self, orchestrator, verification):
        real = [await _upload(orchestrator) for _ in range(3)]
        requests = [
            VerificationRequest(real[0], "approved"),
            VerificationRequest("missing-1", "approved"),
            VerificationRequest(real[1], "rejected"),
            VerificationRequest("missing-2", "rejected"),
            VerificationRequest(real[2], "approved"),
        ]

        result = await verification.batch_verify(requests, OFFICER_ID)

        assert result.success_count == 3
        assert result.failure_count == 2
        assert [r.document_id for r in result.succeeded] == real
        assert result.errors == [
            "item missing-1: Document not found",
            "item missing-2: Document not found",
        ]

    @pytest.mark.asyncio
    async def test_failed_item_leaves_no_trace(self, orchestrator, verification, broker, test_db):
        first = await _upload(orchestrator)
        second = await _upload(orchestrator)

        result = await verification.batch_verify(
            [
                VerificationRequest(first, "approved", metadata={"expiry_date": "not-a-date"}),
                VerificationRequest(second, "approved"),
            ],
            OFFICER_ID,
        )

        assert result.failure_count == 1
        assert result.errors[0].startswith(f"item {first}: Invalid metadata")
        fresh = test_db()
        try:
            assert fresh.get(DocumentRecord, first).verification_status == "pending"
            assert fresh.get(DocumentRecord, first).verified_by is None
            assert fresh.get(DocumentRecord, second).verification_status == "approved"
        finally:
            fresh.close()
        assert [e["payload"]["documentId"] for e in broker.routed(settings.verified_routing_key)] == [second]
