"""Typed message routing between named clients."""

from __future__ import annotations

import queue
import threading
from collections import defaultdict
from typing import Any, Callable, Generic, Hashable, Iterable, Iterator, TypeVar

M = TypeVar("M")
S = TypeVar("S")

GraphSpec = Iterable[tuple[str, Iterable[Hashable], Iterable[Hashable]]]


class Client(Generic[M]):
    """One endpoint of a :class:`MsgGraph`: sends its allowed messages, receives its own."""

    def __init__(
        self,
        routes: dict[Hashable, list[queue.Queue]],
        inbox: queue.Queue,
        ident: Callable[[M], Hashable],
    ) -> None:
        self._routes = routes
        self._inbox = inbox
        self._ident = ident

    def send(self, msg: M) -> None:
        """Deliver ``msg`` to every client that receives its kind."""
        try:
            dests = self._routes[self._ident(msg)]
        except KeyError:
            raise ValueError("Attempted to send unauthorized message!") from None
        for dest in dests:
            dest.put(msg)

    def recv(self, timeout: float | None = None) -> M:
        """Block for the next message; raise TimeoutError if ``timeout`` runs out."""
        try:
            return self._inbox.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("no message received") from None

    def try_recv(self) -> M:
        """Return the next message, raising :class:`queue.Empty` if none is waiting."""
        return self._inbox.get_nowait()

    def __iter__(self) -> Iterator[M]:
        while True:
            yield self._inbox.get()

    def try_iter(self) -> Iterator[M]:
        """Yield the messages already waiting, then stop."""
        while True:
            try:
                msg = self._inbox.get_nowait()
            except queue.Empty:
                return
            yield msg


class MsgGraph(Generic[M]):
    """Builds clients from ``(name, sent kinds, received kinds)`` entries.

    ``ident(msg)`` gives the kind of a message.
    """

    def __init__(self, graph_spec: GraphSpec, ident: Callable[[M], Hashable]) -> None:
        self._ident = ident
        spec = [(name, list(tx), list(rx)) for name, tx, rx in graph_spec]

        self._inboxes: dict[str, queue.Queue] = {}
        dests: dict[Hashable, list[str]] = defaultdict(list)
        for name, _, rx_msgs in spec:
            self._inboxes[name] = queue.Queue()
            for kind in rx_msgs:
                dests[kind].append(name)

        self._routes: dict[str, dict[Hashable, list[queue.Queue]]] = {}
        for name, tx_msgs, _ in spec:
            msg_routes = self._routes.setdefault(name, {})
            for kind in tx_msgs:
                routes = msg_routes.setdefault(kind, [])
                routes.extend(self._inboxes[dest] for dest in dests.get(kind, ()))

    def client(self, name: str) -> Client[M] | None:
        """Take the client called ``name``; ``None`` if unknown or already taken."""
        routes = self._routes.pop(name, None)
        if routes is None:
            return None
        inbox = self._inboxes.pop(name, None)
        if inbox is None:
            return None
        return Client(routes, inbox, self._ident)


def make_idle_task(
    client: Client[M],
    state: S,
    idle_handler: Callable[[M, S], Any],
) -> threading.Thread:
    """Start a thread feeding each received message to ``idle_handler``.

    The thread ends when the handler returns a false value.
    """

    def run() -> None:
        for msg in client:
            if not idle_handler(msg, state):
                return

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread