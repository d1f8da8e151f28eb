from __future__ import annotations

import asyncio
import contextlib
import random
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from highlow.logic.enums import GameStatus
from highlow.logic.exceptions import (
    GameInvariantError,
    GameRuleError,
    NotInRoomError,
    RoomNotFoundError,
)
from highlow.logic.game import (
    end_game,
    join_player,
    make_prediction,
    mark_disconnected,
    mark_reconnected,
    remove_player,
    select_pile,
    start_game,
)
from highlow.logic.settings import GameSettings
from highlow.logic.state import GameSession, get_game_view
from highlow.messaging.types import (
    ErrorMessage,
    GameCreatedMessage,
    GameEndedMessage,
    GameJoinedMessage,
    GameOverMessage,
    GameStartedMessage,
    GameStateMessage,
    PileSelectedMessage,
    PlayerDisconnectedMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    PlayerReconnectedMessage,
    PlayerRemovedMessage,
    PredictionResultMessage,
    ReconnectFailedMessage,
    ReconnectFailureReason,
    SessionErrorCode,
)
from highlow.session.broadcast import broadcast_to_connections
from highlow.session.models import ConnectionBinding
from highlow.session.room_store import RoomStore, is_stale
from highlow.session.scheduler import TaskScheduler, eviction_key, flag_clear_key, room_deletion_key
from highlow.session.session_store import DEFAULT_SESSION_TTL_SECONDS, SessionRegistry

if TYPE_CHECKING:
    from highlow.logic.enums import Prediction
    from highlow.logic.state import Pile, Player
    from highlow.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

# Room intent: (session, actor connection id) -> messages to broadcast to the room.
RoomIntent = Callable[[GameSession, str], list[dict[str, Any]]]


def _state_message(session: GameSession) -> dict[str, Any]:
    return GameStateMessage(**get_game_view(session).model_dump()).model_dump()


class _ReconnectFailed(Exception):
    def __init__(self, reason: ReconnectFailureReason, message: str) -> None:
        self.reason = reason
        self.message = message
        super().__init__(message)


class SessionManager:
    """Coordinate connections, player sessions and rooms.

    Binds transient connections to durable session tokens, applies validated
    intents to a room's GameSession under that room's lock and broadcasts the
    results once the lock is released. Owns every deferred effect: grace
    period eviction, empty-room deletion, clearing newly-dealt flags and the
    periodic sweep.
    """

    def __init__(
        self,
        *,
        game_settings: GameSettings | None = None,
        session_ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        disconnect_grace_seconds: float = 90,
        empty_room_grace_seconds: float = 30,
        sweep_interval_seconds: float = 3600,
        newly_dealt_display_seconds: float = 2.5,
        max_rooms: int = 0,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self._session_ttl_seconds = session_ttl_seconds
        self._disconnect_grace_seconds = disconnect_grace_seconds
        self._empty_room_grace_seconds = empty_room_grace_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._newly_dealt_display_seconds = newly_dealt_display_seconds
        self._max_rooms = max_rooms  # 0 means unlimited
        self._clock = clock
        self._rng = rng
        self._registry = SessionRegistry(ttl_seconds=session_ttl_seconds, clock=clock)
        self._room_store = RoomStore(self._registry, settings=game_settings, clock=clock)
        self._scheduler = TaskScheduler()
        self._connections: dict[str, ConnectionProtocol] = {}
        self._bindings: dict[str, ConnectionBinding] = {}  # connection_id -> ConnectionBinding
        self._sweeper_task: asyncio.Task[None] | None = None

    # --- Connection registry ---

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.pop(connection.connection_id, None)
        self._bindings.pop(connection.connection_id, None)

    def get_room(self, room_code: str) -> GameSession | None:
        return self._room_store.get_room(room_code)

    @property
    def room_count(self) -> int:
        return self._room_store.room_count

    @property
    def session_count(self) -> int:
        return len(self._registry)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def _room_connections(self, session: GameSession) -> list[ConnectionProtocol]:
        """Live connections of the room's connected players, snapshotted under the room lock."""
        return [self._connections[p.id] for p in session.players if not p.disconnected and p.id in self._connections]

    async def _send_error(self, connection: ConnectionProtocol, code: SessionErrorCode, message: str) -> None:
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_message(ErrorMessage(code=code, message=message).model_dump())

    # --- Entering a room ---

    async def create_game(self, connection: ConnectionProtocol, username: str) -> None:
        """Create a room with the caller as host."""
        connection_id = connection.connection_id
        if connection_id in self._bindings:
            await self._send_error(connection, SessionErrorCode.ALREADY_IN_ROOM, "You must leave your current game first")
            return
        if self._max_rooms and self._room_store.room_count >= self._max_rooms:
            await self._send_error(connection, SessionErrorCode.SERVER_FULL, "No rooms available, try again later")
            return

        token = self._registry.generate_token()
        room_code, session = self._room_store.create_room(connection_id, username, token)
        self._registry.create_session(connection_id, username, room_code, token=token)
        self._bindings[connection_id] = ConnectionBinding(session_token=token, room_code=room_code)
        state = _state_message(session)

        await connection.send_message(
            GameCreatedMessage(room_code=room_code, session_token=token, username=username).model_dump(),
        )
        await broadcast_to_connections([connection], [state])

    async def join_game(self, connection: ConnectionProtocol, room_code: str, username: str) -> None:
        """Add the caller to an existing room as a new player."""
        connection_id = connection.connection_id
        if connection_id in self._bindings:
            await self._send_error(connection, SessionErrorCode.ALREADY_IN_ROOM, "You must leave your current game first")
            return

        room_lock = self._room_store.get_lock(room_code)
        if room_lock is None:
            await self._send_error(connection, SessionErrorCode.ROOM_NOT_FOUND, "Room does not exist")
            return

        try:
            async with room_lock:
                session = self._room_store.get_room(room_code)
                if session is None:
                    raise RoomNotFoundError("Room does not exist")
                token = self._registry.generate_token()
                join_player(session, connection_id, token, username)
                self._registry.create_session(connection_id, username, room_code, token=token)
                self._bindings[connection_id] = ConnectionBinding(session_token=token, room_code=room_code)
                self._scheduler.cancel(room_deletion_key(room_code))
                targets = self._room_connections(session)
                state = _state_message(session)
        except GameRuleError as e:
            await self._send_error(connection, SessionErrorCode(e.code.value), e.message)
            return

        logger.info("player joined", room_code=room_code, player_count=len(session.players))
        await connection.send_message(
            GameJoinedMessage(room_code=room_code, session_token=token, username=username).model_dump(),
        )
        await broadcast_to_connections(targets, [PlayerJoinedMessage(username=username).model_dump(), state])

    async def reconnect(
        self,
        connection: ConnectionProtocol,
        username: str,
        session_token: str,
        room_code: str | None = None,
    ) -> None:
        """Rebind a returning player to this connection.

        Lookup order: the session token first, then the (username, room_code)
        pair as a heuristic fallback. A player still in the room is rebound by
        session id and keeps slot, stats and host status; a player already
        evicted is re-admitted at the end of turn order unless the game has
        finished.
        """
        connection_id = connection.connection_id
        session_data = self._registry.get_session(session_token)
        if session_data is None and room_code is not None:
            session_data = self._registry.resolve_by_username_and_room(username, room_code)
        if session_data is None:
            await self._send_reconnect_failed(connection, ReconnectFailureReason.UNKNOWN_SESSION, "Session not found")
            return

        token = session_data.session_token
        existing = self._bindings.get(connection_id)
        if existing is not None and existing.session_token != token:
            await self._send_error(connection, SessionErrorCode.ALREADY_IN_ROOM, "You must leave your current game first")
            return

        room_code = session_data.room_code
        room_lock = self._room_store.get_lock(room_code)
        if room_lock is None:
            await self._send_reconnect_failed(connection, ReconnectFailureReason.ROOM_GONE, "Room no longer exists")
            return

        stale_connection: ConnectionProtocol | None = None
        try:
            async with room_lock:
                session = self._room_store.get_room(room_code)
                if session is None:
                    raise _ReconnectFailed(ReconnectFailureReason.ROOM_GONE, "Room no longer exists")
                player = session.find_player_by_session(token)
                if player is not None:
                    previous_id = player.id
                    mark_reconnected(session, player, connection_id)
                    if previous_id != connection_id:
                        self._bindings.pop(previous_id, None)
                        stale_connection = self._connections.get(previous_id)
                    self._scheduler.cancel(eviction_key(room_code, token))
                    readmitted = False
                else:
                    if session.status == GameStatus.FINISHED:
                        raise _ReconnectFailed(ReconnectFailureReason.ROOM_FINISHED, "Game has finished")
                    player = join_player(session, connection_id, token, session_data.username)
                    self._scheduler.cancel(room_deletion_key(room_code))
                    readmitted = True
                self._registry.rebind(token, connection_id)
                self._bindings[connection_id] = ConnectionBinding(session_token=token, room_code=room_code)
                reconnected_name = player.username
                targets = self._room_connections(session)
                state = _state_message(session)
        except _ReconnectFailed as e:
            await self._send_reconnect_failed(connection, e.reason, e.message)
            return

        logger.info("player reconnected", room_code=room_code, readmitted=readmitted)

        if stale_connection is not None:
            with contextlib.suppress(RuntimeError, OSError):
                await stale_connection.close(code=1000, reason="session_resumed")

        await connection.send_message(
            GameJoinedMessage(
                room_code=room_code,
                session_token=token,
                username=reconnected_name,
                reconnected=True,
            ).model_dump(),
        )
        await broadcast_to_connections([connection], [state])
        await broadcast_to_connections(
            targets,
            [PlayerReconnectedMessage(username=reconnected_name).model_dump(), state],
            exclude_connection_id=connection_id,
        )

    async def _send_reconnect_failed(
        self,
        connection: ConnectionProtocol,
        reason: ReconnectFailureReason,
        message: str,
    ) -> None:
        logger.info("reconnect failed", reason=reason)
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_message(ReconnectFailedMessage(reason=reason, message=message).model_dump())

    # --- Room intents ---

    async def _apply_intent(self, connection: ConnectionProtocol, room_code: str, intent: RoomIntent) -> None:
        """Run a room intent under the room lock, then broadcast what it produced.

        Rule violations go to the caller only. Invariant violations are logged
        and reported as internal errors; the state machine raises them before
        mutating anything.
        """
        connection_id = connection.connection_id
        try:
            binding = self._bindings.get(connection_id)
            if binding is None or binding.room_code != room_code:
                raise NotInRoomError("You are not in this room")
            room_lock = self._room_store.get_lock(room_code)
            if room_lock is None:
                raise RoomNotFoundError("Room does not exist")
            async with room_lock:
                session = self._room_store.get_room(room_code)
                if session is None:
                    raise RoomNotFoundError("Room does not exist")
                messages = intent(session, connection_id)
                self._registry.touch(binding.session_token)
                targets = self._room_connections(session)
        except GameRuleError as e:
            logger.warning("intent rejected", room_code=room_code, code=e.code, reason=e.message)
            await self._send_error(connection, SessionErrorCode(e.code.value), e.message)
            return
        except GameInvariantError:
            logger.exception("game invariant violated", room_code=room_code)
            await self._send_error(connection, SessionErrorCode.INTERNAL_ERROR, "Internal error, action rejected")
            return

        await broadcast_to_connections(targets, messages)

    async def start_game(self, connection: ConnectionProtocol, room_code: str) -> None:
        def intent(session: GameSession, actor_id: str) -> list[dict[str, Any]]:
            start_game(session, actor_id, self._rng)
            self._cancel_flag_timers(session)
            return [GameStartedMessage().model_dump(), _state_message(session)]

        await self._apply_intent(connection, room_code, intent)

    async def select_pile(self, connection: ConnectionProtocol, room_code: str, pile_index: int) -> None:
        def intent(session: GameSession, actor_id: str) -> list[dict[str, Any]]:
            select_pile(session, actor_id, pile_index)
            actor = session.find_player(actor_id)
            username = actor.username if actor is not None else ""
            return [
                PileSelectedMessage(pile_index=pile_index, username=username).model_dump(),
                _state_message(session),
            ]

        await self._apply_intent(connection, room_code, intent)

    async def make_prediction(self, connection: ConnectionProtocol, room_code: str, prediction: Prediction) -> None:
        def intent(session: GameSession, actor_id: str) -> list[dict[str, Any]]:
            outcome = make_prediction(session, actor_id, prediction)
            self._schedule_flag_clear(session, outcome.pile_index)
            messages = [
                PredictionResultMessage.from_outcome(outcome).model_dump(),
                _state_message(session),
            ]
            if session.status == GameStatus.FINISHED and session.finish_reason is not None:
                messages.append(GameOverMessage(reason=session.finish_reason, winner=session.winner).model_dump())
            return messages

        await self._apply_intent(connection, room_code, intent)

    async def end_game(self, connection: ConnectionProtocol, room_code: str) -> None:
        def intent(session: GameSession, actor_id: str) -> list[dict[str, Any]]:
            end_game(session, actor_id)
            self._cancel_flag_timers(session)
            return [GameEndedMessage().model_dump(), _state_message(session)]

        await self._apply_intent(connection, room_code, intent)

    async def leave_game(self, connection: ConnectionProtocol, room_code: str) -> None:
        """Remove the caller from the room. Always allowed for a participant."""

        def intent(session: GameSession, actor_id: str) -> list[dict[str, Any]]:
            player = session.find_player(actor_id)
            if player is None:
                raise NotInRoomError("You are not in this room")
            remove_player(session, player)
            self._registry.remove_session(player.session_id)
            self._bindings.pop(actor_id, None)
            self._scheduler.cancel(eviction_key(session.id, player.session_id))
            if session.is_empty:
                self._schedule_room_deletion(session.id)
            logger.info("player left", room_code=session.id, player_count=len(session.players))
            return [PlayerLeftMessage(username=player.username).model_dump(), _state_message(session)]

        await self._apply_intent(connection, room_code, intent)

    # --- Disconnects and deferred effects ---

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        """Mark the bound player disconnected and start the grace period.

        The player keeps their slot, stats and host flag until the grace
        period runs out. A disconnecting current player passes the turn.
        """
        connection_id = connection.connection_id
        binding = self._bindings.pop(connection_id, None)
        if binding is None:
            return
        room_code = binding.room_code
        room_lock = self._room_store.get_lock(room_code)
        if room_lock is None:
            return

        async with room_lock:
            session = self._room_store.get_room(room_code)
            if session is None:
                return
            player = session.find_player(connection_id)
            if player is None:
                # already rebound to a newer connection
                return
            mark_disconnected(session, player, self._clock())
            self._registry.touch(player.session_id)
            self._scheduler.schedule(
                eviction_key(room_code, player.session_id),
                self._disconnect_grace_seconds,
                lambda rc=room_code, sid=player.session_id: self._evict_player(rc, sid),
            )
            username = player.username
            targets = self._room_connections(session)
            state = _state_message(session)

        logger.info("player disconnected", room_code=room_code)
        await broadcast_to_connections(targets, [PlayerDisconnectedMessage(username=username).model_dump(), state])

    async def _evict_player(self, room_code: str, session_id: str) -> None:
        """Grace period expired: remove the player if they are still disconnected.

        The registry entry is kept so a late reconnect can re-admit them.
        """
        room_lock = self._room_store.get_lock(room_code)
        if room_lock is None:
            return
        async with room_lock:
            session = self._room_store.get_room(room_code)
            if session is None:
                return
            player = session.find_player_by_session(session_id)
            if player is None or not player.disconnected:
                return
            remove_player(session, player)
            if session.is_empty:
                self._schedule_room_deletion(room_code)
            username = player.username
            targets = self._room_connections(session)
            state = _state_message(session)

        logger.info("disconnected player removed", room_code=room_code)
        await broadcast_to_connections(targets, [PlayerRemovedMessage(username=username).model_dump(), state])

    def _schedule_room_deletion(self, room_code: str) -> None:
        self._scheduler.schedule(
            room_deletion_key(room_code),
            self._empty_room_grace_seconds,
            lambda rc=room_code: self._delete_empty_room(rc),
        )

    async def _delete_empty_room(self, room_code: str) -> None:
        room_lock = self._room_store.get_lock(room_code)
        if room_lock is None:
            return
        async with room_lock:
            session = self._room_store.get_room(room_code)
            if session is None or not session.is_empty:
                return
            self._room_store.delete_room(room_code)
            self._scheduler.cancel_room(room_code)

    def _schedule_flag_clear(self, session: GameSession, pile_index: int) -> None:
        pile = session.piles[pile_index]
        self._scheduler.schedule(
            flag_clear_key(session.id, pile_index),
            self._newly_dealt_display_seconds,
            lambda rc=session.id, idx=pile_index, p=pile: self._clear_draw_flags(rc, idx, p),
        )

    def _cancel_flag_timers(self, session: GameSession) -> None:
        for index in range(session.settings.num_piles):
            self._scheduler.cancel(flag_clear_key(session.id, index))

    async def _clear_draw_flags(self, room_code: str, pile_index: int, pile: Pile) -> None:
        """Clear the newly-dealt flags of a pile, unless the pile was replaced by a new deal."""
        room_lock = self._room_store.get_lock(room_code)
        if room_lock is None:
            return
        async with room_lock:
            session = self._room_store.get_room(room_code)
            if session is None or pile_index >= len(session.piles) or session.piles[pile_index] is not pile:
                return
            pile.clear_draw_flags()
            targets = self._room_connections(session)
            state = _state_message(session)

        await broadcast_to_connections(targets, [state])

    # --- Periodic sweep ---

    async def sweep(self) -> None:
        """Purge expired sessions and delete rooms abandoned for longer than the session TTL."""
        now = self._clock()
        self._registry.purge_expired(now)
        for room_code in self._room_store.find_stale_rooms(now, self._session_ttl_seconds):
            room_lock = self._room_store.get_lock(room_code)
            if room_lock is None:
                continue
            async with room_lock:
                session = self._room_store.get_room(room_code)
                if session is None or not is_stale(session, now, self._session_ttl_seconds):
                    continue
                self._room_store.delete_room(room_code)
                self._scheduler.cancel_room(room_code)
            logger.info("stale room swept", room_code=room_code)

    def start_sweeper(self) -> None:
        """Start the periodic sweep task. Idempotent."""
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return
        self._sweeper_task = asyncio.create_task(self._sweeper_loop())

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
            self._sweeper_task = None

    async def _sweeper_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception("session sweep encountered an error")

    async def shutdown(self) -> None:
        """Stop the sweeper and cancel every pending deferred callback."""
        await self.stop_sweeper()
        self._scheduler.cancel_all()

    def is_bound(self, connection_id: str) -> bool:
        return connection_id in self._bindings

    def player_for(self, connection_id: str) -> Player | None:
        binding = self._bindings.get(connection_id)
        if binding is None:
            return None
        session = self._room_store.get_room(binding.room_code)
        return session.find_player(connection_id) if session is not None else None
