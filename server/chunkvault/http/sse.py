"""Менеджер событий Server-Sent Events."""

from __future__ import annotations

import asyncio
import itertools
import json
from typing import AsyncGenerator, Dict, Set


class SSEManager:
    """Брокер SSE: каждое событие получает номер и рассылается всем подписчикам."""

    def __init__(self, queue_size: int = 100) -> None:
        self._subscribers: Set[asyncio.Queue[str]] = set()
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self.queue_size = queue_size

    @property
    def subscribers(self) -> int:
        return len(self._subscribers)

    async def subscribe(self) -> AsyncGenerator[str, None]:
        queue: asyncio.Queue[str] = asyncio.Queue(self.queue_size)
        async with self._lock:
            self._subscribers.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            async with self._lock:
                self._subscribers.discard(queue)

    async def publish(self, event: str, data: Dict) -> int:
        """Разослать событие; отстающие подписчики отключаются."""

        payload = self._format_event(next(self._ids), event, data)
        async with self._lock:
            dead: Set[asyncio.Queue[str]] = set()
            for queue in self._subscribers:
                try:
                    queue.put_nowait(payload)
                except asyncio.QueueFull:
                    dead.add(queue)
            self._subscribers -= dead
            return len(self._subscribers)

    @staticmethod
    def _format_event(event_id: int, event: str, data: Dict) -> str:
        body = json.dumps(data, ensure_ascii=False, default=str)
        return f"id: {event_id}\nevent: {event}\ndata: {body}\n\n"
