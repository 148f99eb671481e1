import threading
import unittest

from kvbench.store import Batch, KeyValueStore, StoreCommandError


class TestKeyValueStore(unittest.TestCase):
    def setUp(self):
        """Set up a fresh store for each test."""
        self.kv = KeyValueStore()

    def test_set_and_get(self):
        """Test setting a value and retrieving it."""
        self.kv.set("name", "Zizo")
        self.assertEqual(self.kv.get("name"), "Zizo")

    def test_get_missing_returns_none(self):
        self.assertIsNone(self.kv.get("missing"))

    def test_overwrite(self):
        self.kv.set("key1", "value1")
        self.kv.set("key1", "value2")
        self.assertEqual(self.kv.get("key1"), "value2")
        self.assertEqual(len(self.kv), 1)

    def test_flush_all_empties_store(self):
        for i in range(10):
            self.kv.set(f"key{i}", f"value{i}")
        self.kv.flush_all()
        self.assertEqual(self.kv.keys("*"), set())
        self.assertEqual(len(self.kv), 0)

    def test_keys_pattern(self):
        self.kv.set("key1", "a")
        self.kv.set("key2", "b")
        self.kv.set("other", "c")
        self.assertEqual(self.kv.keys("*"), {"key1", "key2", "other"})
        self.assertEqual(self.kv.keys("key*"), {"key1", "key2"})
        self.assertEqual(self.kv.keys("key?"), {"key1", "key2"})

    def test_keys_returns_a_copy(self):
        self.kv.set("a", "1")
        keys = self.kv.keys()
        self.kv.set("b", "2")
        self.assertEqual(keys, {"a"})

    def test_concurrent_writers(self):
        def worker(start):
            for i in range(start, start + 250):
                self.kv.set(f"key{i}", f"value{i}")

        threads = [threading.Thread(target=worker, args=(n * 250,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(self.kv), 2000)


class TestBatch(unittest.TestCase):
    def setUp(self):
        self.kv = KeyValueStore()

    def test_pipeline_executes_on_exit(self):
        with self.kv.pipeline() as batch:
            batch.set("k1", "v1").set("k2", "v2")
            self.assertEqual(len(batch), 2)
            # nothing is sent until the block exits
            self.assertIsNone(self.kv.get("k1"))
        self.assertEqual(self.kv.get("k1"), "v1")
        self.assertEqual(self.kv.get("k2"), "v2")
        self.assertEqual(batch.results, [True, True])

    def test_pipeline_get_results_in_order(self):
        self.kv.set("a", "1")
        self.kv.set("b", "2")
        with self.kv.pipeline() as batch:
            batch.get("b")
            batch.get("missing")
            batch.get("a")
        self.assertEqual(batch.results, ["2", None, "1"])

    def test_pipeline_discarded_on_error(self):
        with self.assertRaises(RuntimeError):
            with self.kv.pipeline() as batch:
                batch.set("k1", "v1")
                raise RuntimeError("boom")
        self.assertIsNone(self.kv.get("k1"))
        self.assertEqual(len(batch), 0)

    def test_empty_pipeline(self):
        with self.kv.pipeline() as batch:
            pass
        self.assertEqual(batch.results, [])

    def test_unknown_command_rejected(self):
        batch = self.kv.pipeline()
        batch.commands.append(("INCR", ("k",)))
        with self.assertRaises(StoreCommandError):
            batch.execute()

    def test_base_batch_requires_transport(self):
        batch = Batch()
        batch.set("k", "v")
        with self.assertRaises(NotImplementedError):
            batch.execute()


if __name__ == "__main__":
    unittest.main()
