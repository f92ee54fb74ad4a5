"""Behavioral contract shared by every store backend.

Each test runs once per backend (local, memory, s3, gs, az); cloud backends
use the fake SDK clients from conftest.py.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable
from datetime import UTC
from pathlib import Path

import pytest

from unistore.compression import Codec
from unistore.errors import (
    InvalidUsageError,
    ObjectDecodeError,
    ObjectNotFoundError,
    OperationCancelledError,
    StopWalk,
)
from unistore.metering import MeteringHooks
from unistore.store import Store

StoreFactory = Callable[..., Store]


def _walk(store: Store, prefix: str = "", starting_point: str = "") -> list[str]:
    seen: list[str] = []
    store.walk_from(prefix, starting_point, seen.append)
    return seen


class TestReadWrite:
    """Tests for write, open and existence checks."""

    def test_write_then_read_returns_identical_bytes(self, store: Store) -> None:
        """Bytes written under a name should be read back unchanged."""
        data = b"Hello, World! This is test content."

        store.write_bytes("doc", data)

        assert store.read_bytes("doc") == data
        assert store.file_exists("doc") is True

    def test_empty_content(self, store: Store) -> None:
        """An empty object should be stored and read back as empty."""
        store.write_bytes("empty", b"")

        assert store.file_exists("empty") is True
        assert store.read_bytes("empty") == b""

    def test_large_content_streams_through(self, store: Store) -> None:
        """Content larger than one copy chunk should survive the round trip."""
        data = os.urandom(200 * 1024)

        store.write_bytes("large", data)

        assert store.read_bytes("large") == data

    def test_open_missing_raises_not_found(self, store: Store) -> None:
        """Opening a name that was never written should raise ObjectNotFoundError."""
        with pytest.raises(ObjectNotFoundError) as exc_info:
            store.open_object("missing")

        assert exc_info.value.key == "missing"

    def test_file_exists_false_for_missing(self, store: Store) -> None:
        assert store.file_exists("missing") is False

    def test_nested_names(self, store: Store) -> None:
        """Names containing "/" should behave like any other name."""
        store.write_bytes("0001/0002", b"nested")

        assert store.read_bytes("0001/0002") == b"nested"
        assert store.list_files() == ["0001/0002"]

    def test_reader_is_closable_stream(self, store: Store) -> None:
        """open_object should return a readable stream that supports partial reads."""
        store.write_bytes("doc", b"abcdefgh")

        with store.open_object("doc") as reader:
            assert reader.read(3) == b"abc"
            assert reader.read() == b"defgh"

        assert reader.closed


class TestOverwritePolicy:
    """Tests for overwrite on/off semantics."""

    def test_overwrite_off_keeps_existing_content(self, make_store: StoreFactory) -> None:
        """With overwrite off, a second write should succeed and change nothing."""
        store = make_store(overwrite=False)

        store.write_bytes("doc", b"first")
        store.write_bytes("doc", b"second")

        assert store.read_bytes("doc") == b"first"

    def test_overwrite_on_replaces_content(self, make_store: StoreFactory) -> None:
        store = make_store(overwrite=True)

        store.write_bytes("doc", b"first")
        store.write_bytes("doc", b"second")

        assert store.read_bytes("doc") == b"second"

    def test_copy_respects_overwrite_off(self, make_store: StoreFactory) -> None:
        """copy_object onto an existing name should not replace it when overwrite is off."""
        store = make_store(overwrite=False)
        store.write_bytes("src", b"source")
        store.write_bytes("dest", b"existing")

        store.copy_object("src", "dest")

        assert store.read_bytes("dest") == b"existing"

    def test_copy_creates_destination(self, make_store: StoreFactory) -> None:
        store = make_store(extension="dbin.zst", compression=Codec.ZSTD)
        store.write_bytes("src", b"payload" * 100)

        store.copy_object("src", "dest")

        assert store.read_bytes("dest") == b"payload" * 100
        assert store.read_bytes("src") == b"payload" * 100

    def test_copy_missing_source_raises_not_found(self, store: Store) -> None:
        with pytest.raises(ObjectNotFoundError):
            store.copy_object("missing", "dest")


class TestDelete:
    """Tests for delete_object."""

    def test_delete_removes_object(self, store: Store) -> None:
        store.write_bytes("doc", b"data")

        store.delete_object("doc")

        assert store.file_exists("doc") is False
        assert store.list_files() == []

    def test_delete_missing_raises_not_found(self, store: Store) -> None:
        with pytest.raises(ObjectNotFoundError):
            store.delete_object("missing")


class TestCompression:
    """Tests for codec fidelity and lazy decode errors."""

    @pytest.mark.parametrize("codec", [Codec.NONE, Codec.GZIP, Codec.ZSTD])
    def test_codec_round_trip(self, make_store: StoreFactory, codec: Codec) -> None:
        """Reads should return exactly the bytes written, whatever the codec."""
        store = make_store(compression=codec)
        data = b"0123456789abcdef" * 4096

        store.write_bytes("doc", data)

        assert store.read_bytes("doc") == data

    def test_compressed_object_is_smaller(self, make_store: StoreFactory) -> None:
        """The stored size of compressible content should shrink under zstd."""
        store = make_store(compression=Codec.ZSTD)
        data = b"a" * 100_000

        store.write_bytes("doc", data)

        assert store.object_attributes("doc").size < len(data)

    @pytest.mark.parametrize("codec", [Codec.GZIP, Codec.ZSTD])
    def test_codec_mismatch_fails_on_read_not_open(
        self, make_store: StoreFactory, codec: Codec
    ) -> None:
        """Opening undecodable content should succeed; the read should raise."""
        make_store().write_bytes("doc", b"this is not compressed data at all")
        store = make_store(compression=codec)

        reader = store.open_object("doc")
        try:
            with pytest.raises(ObjectDecodeError):
                reader.read()
        finally:
            reader.close()


class TestMetering:
    """Tests for the four byte-count callbacks."""

    def test_write_and_read_callbacks_report_byte_counts(
        self, make_store: StoreFactory
    ) -> None:
        counts = {
            "compressed_write": 0,
            "uncompressed_write": 0,
            "compressed_read": 0,
            "uncompressed_read": 0,
        }

        def counter(field: str) -> Callable[[int], None]:
            def add(n: int) -> None:
                counts[field] += n

            return add

        hooks = MeteringHooks(**{field: counter(field) for field in counts})
        store = make_store(compression=Codec.GZIP, hooks=hooks)
        data = b"metered content " * 5000

        store.write_bytes("doc", data)
        assert counts["uncompressed_write"] == len(data)
        assert counts["compressed_write"] == store.object_attributes("doc").size
        assert 0 < counts["compressed_write"] < len(data)

        assert store.read_bytes("doc") == data
        assert counts["uncompressed_read"] == len(data)
        assert counts["compressed_read"] == counts["compressed_write"]

    def test_no_hooks_is_fine(self, store: Store) -> None:
        store.write_bytes("doc", b"data")

        assert store.read_bytes("doc") == b"data"


class TestWalk:
    """Tests for walk, walk_from and list_files."""

    def test_walk_from_numbered_names(self, store: Store) -> None:
        """Walking from "00000002" should visit 2, 3 and 4 in order."""
        for i in range(1, 5):
            store.write_bytes(f"{i:08d}", b"x")

        assert _walk(store, "", "00000002") == ["00000002", "00000003", "00000004"]

    def test_walk_from_single_character(self, store: Store) -> None:
        """A one-character starting point should be inclusive too."""
        for name in ("a", "b", "c", "d"):
            store.write_bytes(name, b"x")

        assert _walk(store, "", "b") == ["b", "c", "d"]

    def test_walk_from_outside_prefix_is_invalid_usage(self, store: Store) -> None:
        """A starting point not starting with the prefix should be rejected up front."""
        store.write_bytes("0000/0001", b"x")
        visited: list[str] = []

        with pytest.raises(InvalidUsageError) as exc_info:
            store.walk_from("0000", "0001/0002", visited.append)

        assert "starting point" in str(exc_info.value)
        assert "must start with prefix" in str(exc_info.value)
        assert visited == []

    def test_walk_is_ascending(self, store: Store) -> None:
        names = ["b", "a/b", "a.c", "a0", "ab", "a/a/z"]
        for name in names:
            store.write_bytes(name, b"x")

        assert _walk(store) == sorted(names)

    def test_walk_filters_by_prefix(self, store: Store) -> None:
        for name in ("0000a", "0000b", "0001a", "1000"):
            store.write_bytes(name, b"x")

        assert _walk(store, "0000") == ["0000a", "0000b"]
        assert _walk(store, "0001") == ["0001a"]
        assert _walk(store, "2") == []

    def test_walk_from_starting_point_between_names(self, store: Store) -> None:
        """A starting point that is not itself a name should start at the next name."""
        for name in ("0010", "0020", "0030"):
            store.write_bytes(name, b"x")

        assert _walk(store, "00", "0015") == ["0020", "0030"]

    def test_walk_from_past_last_name_visits_nothing(self, store: Store) -> None:
        store.write_bytes("0010", b"x")

        assert _walk(store, "", "0099") == []

    def test_walk_resumes_after_interruption(self, store: Store) -> None:
        """Stopping and resuming from the next name should cover every name once."""
        names = [f"{i:04d}" for i in range(10)]
        for name in names:
            store.write_bytes(name, b"x")

        first: list[str] = []

        def visit(name: str) -> None:
            first.append(name)
            if len(first) == 4:
                raise StopWalk

        store.walk("", visit)
        resumed = _walk(store, "", names[len(first)])

        assert first + resumed == names

    def test_walk_with_extension_reports_base_names(self, make_store: StoreFactory) -> None:
        store = make_store(extension="jsonl.gz", compression=Codec.GZIP)
        for name in ("0001", "0002"):
            store.write_bytes(name, b"{}")

        assert _walk(store) == ["0001", "0002"]
        assert _walk(store, "", "0002") == ["0002"]

    def test_walk_with_extension_orders_by_name(self, make_store: StoreFactory) -> None:
        """"a" should come before "a-b" even though "a-b.dbin.zst" sorts first."""
        store = make_store(extension="dbin.zst", compression=Codec.ZSTD)
        names = ["a-b", "a", "a-b-c", "a0", "b", "a.x"]
        for name in names:
            store.write_bytes(name, b"x")

        assert _walk(store) == sorted(names)
        assert store.list_files("a") == sorted(n for n in names if n.startswith("a"))

    def test_walk_from_with_extension_skips_lower_names(self, make_store: StoreFactory) -> None:
        """No name below the starting point should be visited, wherever its key lists."""
        store = make_store(extension="dbin.zst", compression=Codec.ZSTD)
        for name in ("a", "a-b", "a-c", "b"):
            store.write_bytes(name, b"x")

        assert _walk(store, "", "a-") == ["a-b", "a-c", "b"]
        assert _walk(store, "a", "a-c") == ["a-c"]

    def test_stop_walk_ends_without_error(self, store: Store) -> None:
        for name in ("a", "b", "c"):
            store.write_bytes(name, b"x")
        seen: list[str] = []

        def visit(name: str) -> None:
            seen.append(name)
            raise StopWalk

        store.walk("", visit)

        assert seen == ["a"]

    def test_visit_error_propagates(self, store: Store) -> None:
        store.write_bytes("a", b"x")

        def visit(name: str) -> None:
            raise ValueError(f"bad {name}")

        with pytest.raises(ValueError, match="bad a"):
            store.walk("", visit)

    def test_list_files_respects_max_results(self, store: Store) -> None:
        for name in ("a", "b", "c", "d"):
            store.write_bytes(name, b"x")

        assert store.list_files() == ["a", "b", "c", "d"]
        assert store.list_files("", 2) == ["a", "b"]
        assert store.list_files("", 0) == []
        assert store.list_files("c") == ["c"]

    def test_iter_names_is_lazy_sequence(self, store: Store) -> None:
        for name in ("a", "b", "c"):
            store.write_bytes(name, b"x")

        names = store.iter_names("", "b")

        assert next(names) == "b"
        assert list(names) == ["c"]


class TestCancellation:
    """Tests for the cancel signal."""

    def test_cancelled_write_commits_nothing(self, store: Store) -> None:
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            store.write_bytes("doc", b"data" * 1000, cancel=cancel)

        assert store.file_exists("doc") is False

    def test_cancelled_walk_stops(self, store: Store) -> None:
        store.write_bytes("a", b"x")
        cancel = threading.Event()
        cancel.set()
        seen: list[str] = []

        with pytest.raises(OperationCancelledError):
            store.walk("", seen.append, cancel=cancel)

        assert seen == []


class TestDerivedHandles:
    """Tests for sub_store, clone and naming helpers."""

    def test_sub_store_scopes_names(self, store: Store) -> None:
        store.write_bytes("sub/x", b"1")
        store.write_bytes("other", b"2")

        sub = store.sub_store("sub")

        assert sub.read_bytes("x") == b"1"
        assert sub.list_files() == ["x"]
        assert sub.base_url == store.base_url + "/sub"

    def test_clone_changes_config_and_shares_data(self, store: Store) -> None:
        store.write_bytes("doc", b"first")

        clone = store.clone(overwrite=True)
        clone.write_bytes("doc", b"second")

        assert clone.overwrite is True
        assert store.overwrite is False
        assert store.read_bytes("doc") == b"second"

    def test_object_url_appends_name_and_extension(self, make_store: StoreFactory) -> None:
        store = make_store(extension="dbin.zst")

        assert store.object_url("0001") == f"{store.base_url}/0001.dbin.zst"

    def test_object_path_round_trips(self, make_store: StoreFactory) -> None:
        store = make_store(extension="dbin.zst")

        assert store.to_base_name(store.object_path("0001/0002")) == "0001/0002"

    def test_object_attributes(self, store: Store) -> None:
        store.write_bytes("doc", b"12345")

        attrs = store.object_attributes("doc")

        assert attrs.size == 5
        assert attrs.last_modified.tzinfo is not None
        assert attrs.last_modified.utcoffset() == UTC.utcoffset(None)

    def test_object_attributes_missing(self, store: Store) -> None:
        with pytest.raises(ObjectNotFoundError):
            store.object_attributes("missing")

    def test_context_manager(self, store: Store) -> None:
        with store as handle:
            handle.write_bytes("doc", b"data")

        assert store.read_bytes("doc") == b"data"


class TestPushLocalFile:
    """Tests for push_local_file."""

    def test_push_uploads_and_removes_local_file(self, store: Store, tmp_path: Path) -> None:
        local = tmp_path / "upload.bin"
        local.write_bytes(b"pushed content")

        store.push_local_file(local, "pushed")

        assert store.read_bytes("pushed") == b"pushed content"
        assert not local.exists()

    def test_push_with_verify_delay(self, make_store: StoreFactory, tmp_path: Path) -> None:
        store = make_store(push_verify_delay=0.01)
        local = tmp_path / "upload.bin"
        local.write_bytes(b"verified")

        store.push_local_file(local, "pushed")

        assert store.read_bytes("pushed") == b"verified"
        assert not local.exists()
