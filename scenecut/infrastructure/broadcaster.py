import itertools
import logging
import queue
import threading
from typing import Dict, Iterator, List, Optional
from scenecut.domain.events import ProgressEvent

_CLOSED = object()


class Subscription:
    """Observer handle returned by ``StatusBroadcaster.subscribe``.

    Events are buffered in an unbounded per-subscriber queue, so a slow reader
    never holds up the publisher or other subscribers.
    """

    _ids = itertools.count(1)

    def __init__(self, video_id: Optional[str]):
        self.id = next(self._ids)
        self.video_id = video_id  # None receives every video's events
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def deliver(self, event: ProgressEvent) -> bool:
        """Queues an event; returns False once the subscription is closed."""
        if self._closed.is_set():
            return False
        self._queue.put(event)
        return True

    def close(self) -> None:
        if not self._closed.is_set():
            self._closed.set()
            self._queue.put(_CLOSED)

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """Next event, or None once closed. Raises queue.Empty on timeout."""
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            # Keep the marker for any other reader of this handle
            self._queue.put(_CLOSED)
            return None
        return item

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event


class _Channel:
    """Subscribers of one video (or of all videos, for the wildcard key)."""

    def __init__(self):
        self.lock = threading.Lock()
        self.subscribers: List[Subscription] = []


class StatusBroadcaster:
    """Fans progress events out to the subscribers of each video.

    Each video has its own channel lock, held only while handing an event to
    the subscriber queues. Publishes for different videos share only the
    wildcard channel, whose lock is never held across a blocking call.
    Subscribers see one video's events in publish order. There is no replay:
    late subscribers should read the job registry to catch up.

    A channel exists only while it has subscribers; publishing to a video
    nobody watches allocates nothing.
    """

    def __init__(self):
        self._channels: Dict[Optional[str], _Channel] = {}
        # Lock order: _registry_lock before any channel lock
        self._registry_lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def subscribe(self, video_id: Optional[str] = None) -> Subscription:
        """Subscribes to one video's events, or to all videos when video_id is None."""
        sub = Subscription(video_id)
        with self._registry_lock:
            channel = self._channels.get(video_id)
            if channel is None:
                channel = self._channels[video_id] = _Channel()
            with channel.lock:
                channel.subscribers.append(sub)
        self.logger.debug(f"SUBSCRIBE: #{sub.id} video={video_id or '*'}")
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Removes and closes a subscription. Safe to call more than once."""
        with self._registry_lock:
            channel = self._channels.get(sub.video_id)
            if channel is not None:
                with channel.lock:
                    if sub in channel.subscribers:
                        channel.subscribers.remove(sub)
                    if not channel.subscribers:
                        del self._channels[sub.video_id]
        sub.close()

    def publish(self, video_id: str, event: ProgressEvent) -> int:
        """Delivers event to the video's subscribers and wildcard subscribers.

        Returns the number of subscribers reached. Closed subscriptions are
        dropped.
        """
        delivered = 0
        for key in (video_id, None):
            with self._registry_lock:
                channel = self._channels.get(key)
            if channel is None:
                continue
            with channel.lock:
                subs = channel.subscribers
                alive = [s for s in subs if s.deliver(event)]
                if len(alive) != len(subs):
                    self.logger.debug(f"BROADCAST: dropped {len(subs) - len(alive)} closed subscriber(s) for {key or '*'}")
                    channel.subscribers = alive
                delivered += len(alive)
            if not alive:
                self._discard_if_empty(key, channel)
        return delivered

    def _discard_if_empty(self, key: Optional[str], channel: _Channel) -> None:
        with self._registry_lock:
            if self._channels.get(key) is not channel:
                return
            with channel.lock:
                if not channel.subscribers:
                    del self._channels[key]

    def subscriber_count(self, video_id: Optional[str] = None) -> int:
        with self._registry_lock:
            channel = self._channels.get(video_id)
            if channel is None:
                return 0
            with channel.lock:
                return len(channel.subscribers)

    def channel_count(self) -> int:
        """Number of videos (plus the wildcard) that currently have subscribers."""
        with self._registry_lock:
            return len(self._channels)

    def close(self) -> None:
        """Closes every subscription; used at process shutdown."""
        with self._registry_lock:
            channels, self._channels = list(self._channels.values()), {}
        for channel in channels:
            with channel.lock:
                subs, channel.subscribers = channel.subscribers, []
            for sub in subs:
                sub.close()
