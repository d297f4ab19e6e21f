"""Tests for the import pipeline strategies.

Failure handling is exercised against an in-memory fake store; idempotence
and the end-to-end upload path run against SQLite.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest

from app.ingest.pipeline import (
    MAX_ERROR_DETAILS,
    EmptyImportError,
    ImportReport,
    import_bulk_then_fallback,
    import_chunked_parallel,
    parse_upload,
)
from app.library.parsers import TrackCandidate
from app.library.store import ConflictError, StoreError, StoreUnavailableError

# ---------------------------------------------------------------------------
# Fake store
# ---------------------------------------------------------------------------


class FakeStore:
    """Records inserts; configured titles conflict or fail on insert."""

    def __init__(
        self,
        *,
        conflict_titles: set[str] | None = None,
        error_titles: set[str] | None = None,
        unavailable: bool = False,
        bulk_exception: BaseException | None = None,
    ) -> None:
        self.conflict_titles = conflict_titles or set()
        self.error_titles = error_titles or set()
        self.unavailable = unavailable
        self.bulk_exception = bulk_exception
        self.rows: list[TrackCandidate] = []
        self.bulk_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def insert_many(self, candidates):
        self.bulk_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.unavailable:
                raise StoreUnavailableError("down")
            if self.bulk_exception is not None:
                raise self.bulk_exception
            if any(c.title in self.conflict_titles | self.error_titles for c in candidates):
                raise StoreError("batch rejected")
            self.rows.extend(candidates)
            return len(candidates)
        finally:
            self.in_flight -= 1

    async def insert_one(self, candidate):
        if candidate.title in self.conflict_titles:
            raise ConflictError("insert_one: duplicate row")
        if candidate.title in self.error_titles:
            raise StoreError("insert_one: value too long")
        self.rows.append(candidate)
        return uuid.uuid4()


def _batch(*titles: str) -> list[TrackCandidate]:
    return [TrackCandidate(title=t, artist="Artist", location=f"/m/{t}.mp3") for t in titles]


# ---------------------------------------------------------------------------
# ImportReport
# ---------------------------------------------------------------------------


class TestImportReport:
    def test_english_summary(self):
        report = ImportReport(total=6, imported=2, skipped=1, errors=3)
        assert report.summary() == "2 songs imported (1 duplicates skipped) (3 errors)"

    def test_summary_omits_zero_counts(self):
        assert ImportReport(total=2, imported=2).summary("en") == "2 songs imported"

    def test_hebrew_summary(self):
        text = ImportReport(total=3, imported=3, skipped=0, cancelled=True).summary("he")
        assert text.startswith("3 ")
        assert "(" in text

    def test_unknown_locale_falls_back_to_english(self):
        assert ImportReport(imported=1).summary("fr") == "1 songs imported"

    def test_error_details_are_capped(self):
        report = ImportReport()
        for i in range(MAX_ERROR_DETAILS + 5):
            report.record_error(f"t{i}", "boom")
        assert report.errors == MAX_ERROR_DETAILS + 5
        assert len(report.error_details) == MAX_ERROR_DETAILS
        assert report.error_details[0] == "t0: boom"


# ---------------------------------------------------------------------------
# parse_upload
# ---------------------------------------------------------------------------


class TestParseUpload:
    def test_empty_file(self):
        with pytest.raises(EmptyImportError) as exc_info:
            parse_upload("lib.txt", b"", 30)
        assert exc_info.value.code == "EMPTY_FILE"

    def test_no_tracks(self):
        with pytest.raises(EmptyImportError) as exc_info:
            parse_upload("lib.xml", b'<?xml version="1.0"?><DJ_PLAYLISTS/>', 30)
        assert exc_info.value.code == "NO_TRACKS"

    def test_parses_tab_delimited(self):
        data = "#\t\tTitle\tArtist\n1\t\tSong\tSinger\n".encode()
        (track,) = parse_upload("lib.txt", data, 30)
        assert track.title == "Song"


# ---------------------------------------------------------------------------
# Bulk-then-fallback
# ---------------------------------------------------------------------------


class TestBulkThenFallback:
    @pytest.mark.asyncio
    async def test_bulk_success(self):
        store = FakeStore()
        report = await import_bulk_then_fallback(store, _batch("A", "B", "C"))
        assert (report.total, report.imported, report.errors) == (3, 3, 0)
        assert store.bulk_calls == 1

    @pytest.mark.asyncio
    async def test_fallback_counts_conflicts_as_errors(self):
        store = FakeStore(conflict_titles={"B"}, error_titles={"C"})
        report = await import_bulk_then_fallback(store, _batch("A", "B", "C", "D"))
        assert report.imported == 2
        assert report.skipped == 0
        assert report.errors == 2
        assert [r.title for r in store.rows] == ["A", "D"]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        report = await import_bulk_then_fallback(FakeStore(), [])
        assert report.total == 0
        assert report.imported == 0

    @pytest.mark.asyncio
    async def test_unavailable_propagates(self):
        with pytest.raises(StoreUnavailableError):
            await import_bulk_then_fallback(FakeStore(unavailable=True), _batch("A"))


# ---------------------------------------------------------------------------
# Chunked parallel
# ---------------------------------------------------------------------------


class TestChunkedParallel:
    @pytest.mark.asyncio
    async def test_in_batch_title_repeats_are_skipped(self):
        store = FakeStore()
        batch = _batch("Hello", "World") + [TrackCandidate(title="HELLO", artist="Other")]
        report = await import_chunked_parallel(store, batch)
        assert (report.total, report.imported, report.skipped, report.errors) == (3, 2, 1, 0)

    @pytest.mark.asyncio
    async def test_conflicts_skipped_errors_counted_per_chunk(self):
        store = FakeStore(conflict_titles={"B"}, error_titles={"E"})
        report = await import_chunked_parallel(
            store, _batch("A", "B", "C", "D", "E", "F"), chunk_size=2
        )
        assert report.imported == 4
        assert report.skipped == 1
        assert report.errors == 1
        assert report.error_details == ["E: insert_one: value too long"]
        assert sorted(r.title for r in store.rows) == ["A", "C", "D", "F"]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        store = FakeStore()
        titles = [f"song {i}" for i in range(25)]
        report = await import_chunked_parallel(
            store, _batch(*titles), chunk_size=2, max_concurrency=3
        )
        assert report.imported == 25
        assert store.bulk_calls == 13
        assert 1 < store.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_unexpected_chunk_failure_marks_whole_chunk(self):
        store = FakeStore(bulk_exception=RuntimeError("driver bug"))
        report = await import_chunked_parallel(store, _batch("A", "B", "C"), chunk_size=2)
        assert report.errors == 3
        assert report.imported == 0

    @pytest.mark.asyncio
    async def test_unavailable_propagates(self):
        with pytest.raises(StoreUnavailableError):
            await import_chunked_parallel(FakeStore(unavailable=True), _batch("A", "B"))

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        cancel = asyncio.Event()
        cancel.set()
        store = FakeStore()
        report = await import_chunked_parallel(store, _batch("A", "B"), cancel_event=cancel)
        assert report.cancelled is True
        assert report.imported == 0
        assert store.bulk_calls == 0

    @pytest.mark.asyncio
    async def test_cancel_between_waves(self):
        cancel = asyncio.Event()

        class CancellingStore(FakeStore):
            async def insert_many(self, candidates):
                cancel.set()
                return await super().insert_many(candidates)

        store = CancellingStore()
        report = await import_chunked_parallel(
            store, _batch("A", "B", "C"), chunk_size=1, max_concurrency=1, cancel_event=cancel
        )
        assert report.cancelled is True
        assert report.imported == 1
        assert "(import cancelled)" in report.summary()

    @pytest.mark.asyncio
    async def test_rejects_invalid_sizes(self):
        with pytest.raises(ValueError):
            await import_chunked_parallel(FakeStore(), _batch("A"), chunk_size=0)
        with pytest.raises(ValueError):
            await import_chunked_parallel(FakeStore(), _batch("A"), max_concurrency=0)


# ---------------------------------------------------------------------------
# Against SQLite
# ---------------------------------------------------------------------------


class TestAgainstDatabase:
    @pytest.mark.asyncio
    async def test_reimport_is_idempotent(self, track_store):
        batch = _batch("One", "Two", "Three", "Four", "Five")

        first = await import_chunked_parallel(track_store, batch, chunk_size=2, max_concurrency=1)
        second = await import_chunked_parallel(track_store, batch, chunk_size=2, max_concurrency=1)

        assert (first.imported, first.skipped, first.errors) == (5, 0, 0)
        assert (second.imported, second.skipped, second.errors) == (0, 5, 0)
        assert await track_store.count() == 5

    @pytest.mark.asyncio
    async def test_partial_overlap_only_imports_new_rows(self, track_store):
        await import_chunked_parallel(track_store, _batch("A", "B"), max_concurrency=1)
        report = await import_chunked_parallel(
            track_store, _batch("A", "B", "C"), max_concurrency=1
        )
        assert (report.imported, report.skipped) == (1, 2)

    @pytest.mark.asyncio
    async def test_bulk_strategy_reimport_reports_errors(self, track_store):
        await import_bulk_then_fallback(track_store, _batch("A", "B"))
        report = await import_bulk_then_fallback(track_store, _batch("A", "B"))
        assert (report.imported, report.errors) == (0, 2)
        assert await track_store.count() == 2

    @pytest.mark.asyncio
    async def test_tab_delimited_upload_end_to_end(self, track_store):
        data = "\n".join(
            [
                "#\tArtwork\tTrack Title\tArtist\tAlbum\tBPM",
                "1\t\tFirst Dance\tEd Sheeran\tDivide\t95",
                "2\t\t\tNobody\tNothing\t100",
                "3\t\tLast Dance\tDonna Summer\tHits\t128",
            ]
        ).encode()

        candidates = parse_upload("export.txt", data, 30)
        report = await import_chunked_parallel(track_store, candidates, max_concurrency=1)

        assert (report.imported, report.skipped, report.errors) == (2, 0, 0)
        assert report.summary() == "2 songs imported"
        assert await track_store.count() == 2
