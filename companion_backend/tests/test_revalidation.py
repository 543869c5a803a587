import unittest
from unittest.mock import MagicMock, patch

from redis import exceptions as redis_exceptions

from companion_backend.revalidation import InMemoryRevalidator, RedisRevalidator


class InMemoryRevalidatorTests(unittest.TestCase):
    def test_records_paths(self):
        revalidator = InMemoryRevalidator()
        revalidator.revalidate("/")
        revalidator.revalidate("/companions/abc")
        self.assertEqual(revalidator.paths, ["/", "/companions/abc"])


class RedisRevalidatorTests(unittest.TestCase):
    @patch("companion_backend.revalidation.redis.Redis.from_url")
    def test_publishes_path_on_channel(self, mock_from_url):
        client = MagicMock()
        mock_from_url.return_value = client
        revalidator = RedisRevalidator(url="redis://localhost:6379/0", channel="pages")
        revalidator.revalidate("/my-journey")
        client.publish.assert_called_once_with("pages", "/my-journey")

    @patch("companion_backend.revalidation.redis.Redis.from_url")
    def test_connection_error_is_logged_and_reconnects(self, mock_from_url):
        broken = MagicMock()
        broken.publish.side_effect = redis_exceptions.ConnectionError("reset")
        fresh = MagicMock()
        mock_from_url.side_effect = [broken, fresh]

        revalidator = RedisRevalidator(url="redis://localhost:6379/0")
        with self.assertLogs("companion_backend.revalidation", level="WARNING"):
            revalidator.revalidate("/")
        self.assertIs(revalidator.client, fresh)

    @patch("companion_backend.revalidation.redis.Redis.from_url")
    def test_other_redis_errors_are_swallowed(self, mock_from_url):
        client = MagicMock()
        client.publish.side_effect = redis_exceptions.ResponseError("READONLY")
        mock_from_url.return_value = client
        revalidator = RedisRevalidator(url="redis://localhost:6379/0")
        with self.assertLogs("companion_backend.revalidation", level="WARNING"):
            revalidator.revalidate("/")


if __name__ == "__main__":
    unittest.main()
