import redis


class UploadQueue:
    """Redis list holding the ids of uploads waiting to be processed.

    The API side RPUSHes an id after flipping the upload to ``processing``;
    BLPOP hands each id to exactly one consumer.
    """

    def __init__(self, client: redis.Redis, key: str, pop_timeout_seconds: int = 5) -> None:
        self._client = client
        self._key = key
        self._pop_timeout = pop_timeout_seconds

    @property
    def key(self) -> str:
        return self._key

    def pop(self) -> str | None:
        """Block until an upload id is available or the timeout elapses.

        Returns:
            The upload id, or None when the timeout elapsed first.

        Raises:
            redis.RedisError: on connection or protocol failure.
        """
        result = self._client.blpop([self._key], timeout=self._pop_timeout)
        if result is None:
            return None
        _key, value = result
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def push(self, upload_id: str) -> None:
        """Append an upload id to the queue, e.g. to retry it by hand."""
        self._client.rpush(self._key, upload_id)
