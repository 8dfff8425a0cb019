import asyncio
from typing import Awaitable, Callable, Dict, List, NamedTuple, Optional, Set
from settings import logger


class TypingEntry(NamedTuple):
    project_id: str
    user_id: str
    socket_id: str
    username: Optional[str]
    handle: asyncio.TimerHandle


class TypingRegistry:
    """Who is typing in which project.

    Each entry expires `timeout` seconds after the last typing-start so a
    client that never sends typing-stop does not stay "typing" forever.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._entries: Dict[str, Dict[str, TypingEntry]] = {}
        self._expiry_tasks: Set[asyncio.Task] = set()

    def start(
        self,
        project_id: str,
        user_id: str,
        socket_id: str,
        username: Optional[str],
        on_expire: Callable[[TypingEntry], Awaitable[None]]
    ) -> None:
        """Mark a user as typing, restarting the expiry timer."""
        self._cancel(project_id, user_id)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(self.timeout, self._expire, project_id, user_id, on_expire)
        self._entries.setdefault(project_id, {})[user_id] = TypingEntry(
            project_id, user_id, socket_id, username, handle
        )

    def stop(self, project_id: str, user_id: str) -> bool:
        """Clear a typing entry. Returns whether one existed."""
        return self._cancel(project_id, user_id) is not None

    def typing_users(self, project_id: str) -> Set[str]:
        return set(self._entries.get(project_id, {}))

    def clear_socket(self, socket_id: str) -> List[TypingEntry]:
        """Drop every entry held by a connection and return them."""
        cleared = []
        for project_id, users in list(self._entries.items()):
            for user_id, entry in list(users.items()):
                if entry.socket_id == socket_id:
                    cleared.append(self._cancel(project_id, user_id))
        return cleared

    def _cancel(self, project_id: str, user_id: str) -> Optional[TypingEntry]:
        users = self._entries.get(project_id)
        if not users or user_id not in users:
            return None
        entry = users.pop(user_id)
        entry.handle.cancel()
        if not users:
            del self._entries[project_id]
        return entry

    def _expire(self, project_id: str, user_id: str, on_expire: Callable[[TypingEntry], Awaitable[None]]) -> None:
        entry = self._cancel(project_id, user_id)
        if entry is None:
            return
        logger.debug("Typing indicator expired", extra={"project_id": project_id, "user_id": user_id})
        task = asyncio.ensure_future(on_expire(entry))
        self._expiry_tasks.add(task)
        task.add_done_callback(self._expiry_tasks.discard)
