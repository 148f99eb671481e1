import unittest
from unittest.mock import MagicMock, patch

from kvbench.client import RedisStoreClient, create_client
from kvbench.store import KeyValueStore, StoreCommandError


class TestRedisStoreClient(unittest.TestCase):
    def setUp(self):
        self.redis = MagicMock()
        self.client = RedisStoreClient(client=self.redis)

    def test_builds_redis_connection(self):
        with patch("kvbench.client.redis.Redis") as redis_cls:
            RedisStoreClient(host="cache", port=6380, db=2)
        redis_cls.assert_called_once_with(host="cache", port=6380, db=2, decode_responses=True)

    def test_flush_uses_flushdb(self):
        self.client.flush_all()
        self.redis.flushdb.assert_called_once_with()

    def test_set_and_get(self):
        self.redis.get.return_value = "value1"
        self.client.set("key1", "value1")
        self.assertEqual(self.client.get("key1"), "value1")
        self.redis.set.assert_called_once_with("key1", "value1")
        self.redis.get.assert_called_once_with("key1")

    def test_keys_returns_set(self):
        self.redis.keys.return_value = ["key0", "key1"]
        self.assertEqual(self.client.keys("*"), {"key0", "key1"})
        self.redis.keys.assert_called_once_with("*")

    def test_pipeline_is_non_transactional_and_executes_once(self):
        pipe = self.redis.pipeline.return_value
        pipe.execute.return_value = [True, True, "v0"]
        with self.client.pipeline() as batch:
            batch.set("key0", "value0")
            batch.set("key1", "value1")
            batch.get("key0")
            pipe.execute.assert_not_called()
        self.redis.pipeline.assert_called_once_with(transaction=False)
        pipe.set.assert_any_call("key0", "value0")
        pipe.set.assert_any_call("key1", "value1")
        pipe.get.assert_called_once_with("key0")
        pipe.execute.assert_called_once_with()
        self.assertEqual(batch.results, [True, True, "v0"])

    def test_pipeline_rejects_unknown_command(self):
        batch = self.client.pipeline()
        batch.commands.append(("DEL", ("key0",)))
        with self.assertRaises(StoreCommandError):
            batch.execute()

    def test_errors_propagate(self):
        self.redis.set.side_effect = ConnectionError("Connection refused")
        with self.assertRaises(ConnectionError):
            self.client.set("key0", "value0")

    def test_close(self):
        self.client.close()
        self.redis.close.assert_called_once_with()


class TestCreateClient(unittest.TestCase):
    def test_backends(self):
        with patch("kvbench.client.redis.Redis"):
            self.assertIsInstance(create_client("redis"), RedisStoreClient)
        tcp = create_client("tcp", host="127.0.0.1")
        self.assertEqual((tcp.host, tcp.port), ("127.0.0.1", 8000))
        self.assertIsInstance(create_client("memory"), KeyValueStore)

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            create_client("memcached")


if __name__ == "__main__":
    unittest.main()
