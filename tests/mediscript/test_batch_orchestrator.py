import asyncio

import pytest

from src.mediscript.domain.errors import (
    BatchAbortedError,
    ExtractionError,
    ExtractionErrorKind,
    StoreError,
    StoreErrorKind,
)
from src.mediscript.domain.models.document_record import RecordStatus
from src.mediscript.infra.storage.record_store import RecordStore
from src.mediscript.services.batch.orchestrator import BatchOrchestrator, BatchPolicy


async def test_all_documents_are_stored_as_pending_in_input_order(store, make_raw, scripted_backend, pdf):
    backend = scripted_backend(
        [make_raw(document_type="New Prescription"), make_raw(document_type="Refill Request"), make_raw(document_type="Fax Cover")]
    )
    progress = []

    report = await BatchOrchestrator(backend, store).run(
        [pdf("a.pdf"), pdf("b.pdf"), pdf("c.pdf")],
        on_progress=lambda done, total: progress.append((done, total)),
    )

    assert backend.calls == ["a.pdf", "b.pdf", "c.pdf"]
    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert report.succeeded == 3 and report.failed == 0
    records = await store.list()
    assert [r.document_type for r in records] == ["Fax Cover", "Refill Request", "New Prescription"]
    assert all(r.status == RecordStatus.PENDING and r.id is not None for r in records)


async def test_fail_fast_stops_at_first_failed_document(store, make_raw, scripted_backend, pdf):
    backend = scripted_backend([make_raw(), None, make_raw()])
    progress = []

    with pytest.raises(BatchAbortedError) as exc_info:
        await BatchOrchestrator(backend, store).run(
            [pdf("doc1.pdf"), pdf("doc2.pdf"), pdf("doc3.pdf")],
            on_progress=lambda done, total: progress.append((done, total)),
        )

    error = exc_info.value
    assert error.succeeded == 1
    assert error.total == 3
    assert error.document == "doc2.pdf"
    assert isinstance(error.cause, ExtractionError)
    assert error.cause.kind == ExtractionErrorKind.EMPTY_RESPONSE
    assert error.cause.document == "doc2.pdf"

    # Document 3 was never attempted.
    assert backend.calls == ["doc1.pdf", "doc2.pdf"]
    assert progress == [(1, 3), (2, 3)]
    records = await store.list()
    assert len(records) == 1
    assert records[0].status == RecordStatus.PENDING


async def test_best_effort_collects_failures_and_continues(store, make_raw, scripted_backend, pdf):
    backend = scripted_backend([make_raw(), "not json", RuntimeError("service down"), make_raw()])

    report = await BatchOrchestrator(backend, store, policy=BatchPolicy.BEST_EFFORT).run(
        [pdf("1.pdf"), pdf("2.pdf"), pdf("3.pdf"), pdf("4.pdf")]
    )

    assert report.succeeded == 2
    assert report.failed == 2
    assert [(f.document, f.kind) for f in report.failures] == [
        ("2.pdf", "SCHEMA_MISMATCH"),
        ("3.pdf", "RuntimeError"),
    ]
    assert report.failures[0].error.document == "2.pdf"
    assert len(await store.list()) == 2


async def test_cancellation_is_checked_between_documents(store, make_raw, scripted_backend, pdf):
    backend = scripted_backend([make_raw(), make_raw(), make_raw()])
    cancel = asyncio.Event()

    def on_progress(done, total):
        if done == 1:
            cancel.set()

    report = await BatchOrchestrator(backend, store).run(
        [pdf("a.pdf"), pdf("b.pdf"), pdf("c.pdf")],
        on_progress=on_progress,
        cancel_event=cancel,
    )

    assert report.cancelled is True
    assert report.succeeded == 1
    assert backend.calls == ["a.pdf"]


async def test_async_progress_callback_is_awaited(store, make_raw, scripted_backend, pdf):
    seen = []

    async def on_progress(done, total):
        await asyncio.sleep(0)
        seen.append(done)

    await BatchOrchestrator(scripted_backend([make_raw(), make_raw()]), store).run(
        [pdf("a.pdf"), pdf("b.pdf")], on_progress=on_progress
    )

    assert seen == [1, 2]


@pytest.mark.parametrize("policy", list(BatchPolicy))
async def test_store_errors_propagate_unchanged(flaky_backend, make_raw, scripted_backend, pdf, policy):
    progress = []
    async with RecordStore(flaky_backend) as record_store:
        flaky_backend.fail_writes = True
        orchestrator = BatchOrchestrator(scripted_backend([make_raw(), make_raw()]), record_store, policy=policy)

        with pytest.raises(StoreError) as exc_info:
            await orchestrator.run(
                [pdf("a.pdf"), pdf("b.pdf")],
                on_progress=lambda done, total: progress.append(done),
            )

    assert exc_info.value.kind == StoreErrorKind.BACKEND_UNAVAILABLE
    assert progress == [1]


async def test_empty_batch(store, scripted_backend):
    report = await BatchOrchestrator(scripted_backend([]), store).run([])

    assert report.total == 0
    assert report.succeeded == 0
