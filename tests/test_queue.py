"""
Tests for the work queue.
"""

import threading

import pytest

from testlog_ingest.watchfolders import WorkQueue


class TestWorkQueue:
    """Tests for FIFO behaviour."""

    def test_fifo_order(self):
        queue = WorkQueue()
        queue.enqueue("/a.log")
        queue.enqueue("/b.log")

        assert queue.try_dequeue() == "/a.log"
        assert queue.try_dequeue() == "/b.log"

    def test_empty_returns_none(self):
        assert WorkQueue().try_dequeue() is None

    def test_duplicates_allowed(self):
        queue = WorkQueue()
        queue.enqueue("/a.log")
        queue.enqueue("/a.log")

        assert len(queue) == 2
        assert queue.snapshot() == ["/a.log", "/a.log"]

    def test_contains(self):
        queue = WorkQueue()
        queue.enqueue("/a.log")

        assert "/a.log" in queue
        assert "/b.log" not in queue

    @pytest.mark.parametrize("path", ["", "   ", None])
    def test_blank_path_rejected(self, path):
        with pytest.raises(ValueError):
            WorkQueue().enqueue(path)

    def test_concurrent_producers(self):
        queue = WorkQueue()

        def produce(prefix):
            for i in range(200):
                queue.enqueue(f"/{prefix}/{i}.log")

        threads = [threading.Thread(target=produce, args=(n,)) for n in ("a", "b", "c")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        drained = []
        item = queue.try_dequeue()
        while item is not None:
            drained.append(item)
            item = queue.try_dequeue()

        assert len(drained) == 600
        assert len(set(drained)) == 600
