"""
Subscription registry: which connection watches which keywords.

Maintains both directions of the mapping plus one ``KeywordWatch`` per
distinct normalized keyword. When a keyword gains its first watcher the
listener (the poll scheduler) is told to start polling it; when it loses
its last watcher the listener is told to stop.

The registry performs no I/O and never awaits, so register/unregister are
atomic with respect to other coroutines on the event loop.
"""

from typing import TYPE_CHECKING, Protocol

import structlog

from tubewatch.live.schemas import InvalidInputError, KeywordWatch, keyword_spellings, normalize_keyword

if TYPE_CHECKING:
    from tubewatch.live.connection import LiveConnection

logger = structlog.get_logger(__name__)


class WatchListener(Protocol):
    """Receives keyword start/stop signals from the registry."""

    def start_watching(self, watch: KeywordWatch) -> None: ...

    def stop_watching(self, watch: KeywordWatch) -> None: ...


class SubscriptionRegistry:
    """Bidirectional connection ↔ keyword mapping with reference-counted watches."""

    def __init__(self, listener: WatchListener | None = None) -> None:
        self._listener = listener
        self._watches: dict[str, KeywordWatch] = {}
        self._watchers: dict[str, set["LiveConnection"]] = {}
        self._subscriptions: dict["LiveConnection", tuple[str, ...]] = {}
        self._spellings: dict["LiveConnection", dict[str, str]] = {}

    def set_listener(self, listener: WatchListener) -> None:
        self._listener = listener

    @property
    def connection_count(self) -> int:
        return len(self._subscriptions)

    @property
    def keyword_count(self) -> int:
        return len(self._watches)

    def register(self, connection: "LiveConnection", keywords: list[str]) -> list[str]:
        """Subscribe ``connection`` to ``keywords``.

        Duplicate keywords (after normalization) count once. The spelling the
        client first used for each keyword is kept for ``spelling_of``.

        Returns:
            The normalized keywords, in first-seen order.

        Raises:
            InvalidInputError: If no usable keyword remains after
                normalization, or the connection is already registered.
        """
        spellings = keyword_spellings(keywords)
        normalized = list(spellings)
        if connection in self._subscriptions:
            raise InvalidInputError("connection is already subscribed")

        self._subscriptions[connection] = tuple(normalized)
        self._spellings[connection] = spellings
        connection.keywords = frozenset(normalized)

        for keyword in normalized:
            watch = self._watches.get(keyword)
            created = watch is None
            if created:
                watch = KeywordWatch(keyword=keyword)
                self._watches[keyword] = watch
                self._watchers[keyword] = set()
            self._watchers[keyword].add(connection)
            watch.ref_count += 1
            if created:
                logger.info("Keyword watch created", keyword=keyword)
                if self._listener is not None:
                    self._listener.start_watching(watch)

        logger.info(
            "Connection registered",
            connection_id=connection.connection_id,
            keywords=normalized,
            connections=len(self._subscriptions),
        )
        return normalized

    def unregister(self, connection: "LiveConnection") -> list[str]:
        """Remove ``connection`` from every keyword it watched.

        Idempotent: unknown connections are ignored.

        Returns:
            Keywords whose watch was destroyed by this call.
        """
        keywords = self._subscriptions.pop(connection, None)
        self._spellings.pop(connection, None)
        if keywords is None:
            return []

        released: list[str] = []
        for keyword in keywords:
            watch = self._watches[keyword]
            self._watchers[keyword].discard(connection)
            watch.ref_count -= 1
            if watch.ref_count <= 0:
                del self._watches[keyword]
                del self._watchers[keyword]
                released.append(keyword)
                logger.info("Keyword watch destroyed", keyword=keyword)
                if self._listener is not None:
                    self._listener.stop_watching(watch)

        logger.info(
            "Connection unregistered",
            connection_id=connection.connection_id,
            released=released,
            connections=len(self._subscriptions),
        )
        return released

    def watchers_of(self, keyword: str) -> set["LiveConnection"]:
        """Connections watching ``keyword`` (a copy; empty when unwatched)."""
        return set(self._watchers.get(normalize_keyword(keyword), ()))

    def all_connections(self) -> set["LiveConnection"]:
        return set(self._subscriptions)

    def keywords_of(self, connection: "LiveConnection") -> tuple[str, ...]:
        return self._subscriptions.get(connection, ())

    def spelling_of(self, connection: "LiveConnection", keyword: str) -> str:
        """The spelling ``connection`` subscribed to ``keyword`` with.

        Falls back to the normalized keyword for unknown pairs.
        """
        normalized = normalize_keyword(keyword)
        return self._spellings.get(connection, {}).get(normalized, normalized)

    def watch(self, keyword: str) -> KeywordWatch | None:
        return self._watches.get(normalize_keyword(keyword))

    def keywords(self) -> list[str]:
        return list(self._watches)

    def __contains__(self, connection: object) -> bool:
        return connection in self._subscriptions
