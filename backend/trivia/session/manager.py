from __future__ import annotations

import asyncio
import secrets
import string
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.models import PlayerStatus, PlayerUpdate, RoomStatus, RoomUpdate
from shared.dal.room_store import DuplicatePlayerNameError, DuplicateRoomCodeError
from shared.validators import has_control_characters
from trivia.logic.betting import settle, validate_distribution, validate_full_distribution
from trivia.logic.exceptions import (
    AlreadyRevealedError,
    CommandValidationError,
    NameTakenError,
    NotInGameError,
    PlayerNotFoundError,
    RoomAlreadyStartedError,
    RoomFullError,
    RoomNotFoundError,
    StateError,
    TransientError,
)
from trivia.logic.standings import rank_players
from trivia.messaging.types import (
    BetUpdatedEvent,
    GameStartedEvent,
    PlayerJoinedEvent,
    PlayerRemovedEvent,
    PongEvent,
    RoomCreatedEvent,
    RoomJoinedEvent,
    StateUpdateEvent,
)
from trivia.session.registry import SessionBinding, SessionRole
from trivia.session.types import LeaderboardEntry, OptionView, PlayerView, QuestionView, RoomView

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from shared.dal.models import PlayerRecord, RoomRecord
    from shared.dal.room_store import RoomStore
    from trivia.catalog.catalog import QuestionCatalog
    from trivia.messaging.protocol import ConnectionProtocol
    from trivia.session.broadcast import BroadcastChannel
    from trivia.session.registry import SessionRegistry
    from trivia.session.types import WireModel

logger = structlog.get_logger()

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_HOST_NAME_LENGTH = 50
MAX_PLAYER_NAME_LENGTH = 30
_MAX_CODE_ATTEMPTS = 10


def generate_room_code() -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def _clean_name(name: str, *, max_length: int, field: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise CommandValidationError(f"{field} must not be empty")
    if len(cleaned) > max_length:
        raise CommandValidationError(f"{field} must be at most {max_length} characters")
    if has_control_characters(cleaned):
        raise CommandValidationError(f"{field} must not contain control characters")
    return cleaned


class RoomStateMachine:
    """
    Owns the room lifecycle: waiting -> playing -> finished.

    Every room-scoped command runs its validate-mutate-broadcast sequence
    under that room's lock, so two commands for the same room never
    interleave. Store calls are bounded by a timeout and surface as
    TransientError. Rejections are raised as TriviaError subclasses and
    nothing is mutated or broadcast when one is raised before the first
    store write.
    """

    def __init__(
        self,
        store: RoomStore,
        catalog: QuestionCatalog,
        registry: SessionRegistry,
        channel: BroadcastChannel,
        *,
        starting_bankroll: int = 1_000_000,
        max_players_limit: int = 30,
        store_timeout_seconds: float = 5.0,
        code_generator: Callable[[], str] = generate_room_code,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._registry = registry
        self._channel = channel
        self._starting_bankroll = starting_bankroll
        self._max_players_limit = max_players_limit
        self._store_timeout = store_timeout_seconds
        self._code_generator = code_generator
        self._room_locks: dict[str, asyncio.Lock] = {}  # room_code -> Lock

    @property
    def room_lock_count(self) -> int:
        return len(self._room_locks)

    def _new_room_lock(self, room_code: str) -> asyncio.Lock:
        return self._room_locks.setdefault(room_code, asyncio.Lock())

    async def _room_lock(self, room_code: str) -> asyncio.Lock:
        """Return the room's lock. Unknown codes raise RoomNotFoundError and never get one."""
        lock = self._room_locks.get(room_code)
        if lock is None:
            # rooms are never deleted, so the lookup stays valid once the lock exists
            await self._require_room(room_code)
            lock = self._new_room_lock(room_code)
        return lock

    async def _call_store(self, operation: str, call: Awaitable[Any]) -> Any:  # noqa: ANN401
        try:
            async with asyncio.timeout(self._store_timeout):
                return await call
        except TimeoutError as e:
            logger.warning("store call timed out", operation=operation, timeout=self._store_timeout)
            raise TransientError(f"Storage did not respond in time ({operation})") from e

    # --- connection lifecycle ---

    def connect(self, connection: ConnectionProtocol) -> None:
        self._channel.register(connection)

    async def disconnect(self, connection: ConnectionProtocol) -> None:
        """Drop the session binding and group membership. The Player record stays for reconnection."""
        binding = self._registry.unbind(connection.connection_id)
        self._channel.unregister(connection.connection_id)
        if binding is not None:
            logger.info(
                "connection unbound",
                room_code=binding.room_code,
                role=binding.role,
                player_id=binding.player_id,
            )

    async def ping(self, connection: ConnectionProtocol) -> None:
        await self._send_private(connection, PongEvent())

    # --- room commands ---

    async def create_room(self, connection: ConnectionProtocol, host_name: str, max_players: int) -> RoomRecord:
        host_name = _clean_name(host_name, max_length=MAX_HOST_NAME_LENGTH, field="Host name")
        if not 1 <= max_players <= self._max_players_limit:
            raise CommandValidationError(
                f"Max players must be between 1 and {self._max_players_limit}",
                code="invalid_capacity",
            )
        self._ensure_unbound(connection)

        room = await self._allocate_room(host_name, max_players)
        async with self._new_room_lock(room.code):
            self._bind(connection, SessionBinding(room.code, room.room_id, SessionRole.HOST, host_name))
            logger.info("room created", room_code=room.code, host_name=host_name, max_players=max_players)
            await self._send_private(connection, RoomCreatedEvent(room=self._build_view(room, [])))
        return room

    async def _allocate_room(self, host_name: str, max_players: int) -> RoomRecord:
        for attempt in range(1, _MAX_CODE_ATTEMPTS + 1):
            code = self._code_generator()
            try:
                return await self._call_store("create_room", self._store.create_room(code, host_name, max_players))
            except DuplicateRoomCodeError:
                logger.debug("room code collision", room_code=code, attempt=attempt)
        raise TransientError("Could not allocate a room code, try again", code="code_allocation_failed")

    async def attach_host(self, connection: ConnectionProtocol, room_code: str) -> RoomRecord:
        """Bind a fresh connection as host of an existing room and send it the current snapshot."""
        async with await self._room_lock(room_code):
            room = await self._require_room(room_code)
            existing = self._registry.get(connection.connection_id)
            if existing is not None and not (existing.role == SessionRole.HOST and existing.room_code == room.code):
                raise StateError("Connection is already bound to a room", code="already_bound")

            self._bind(connection, SessionBinding(room.code, room.room_id, SessionRole.HOST, room.host_name))
            players = await self._call_store("get_players", self._store.get_players(room.room_id))
            logger.info("host attached", room_code=room.code)
            await self._send_private(connection, RoomCreatedEvent(room=self._build_view(room, players)))
            return room

    async def join_room(self, connection: ConnectionProtocol, room_code: str, player_name: str) -> PlayerRecord:
        player_name = _clean_name(player_name, max_length=MAX_PLAYER_NAME_LENGTH, field="Player name")
        self._ensure_unbound(connection)

        async with await self._room_lock(room_code):
            room = await self._require_room(room_code)
            players = await self._call_store("get_players", self._store.get_players(room.room_id))

            folded = player_name.casefold()
            existing = next((p for p in players if p.name.casefold() == folded), None)
            if existing is not None:
                if self._registry.find_player_connection(existing.player_id) is not None:
                    raise NameTakenError(f"Name '{player_name}' is already in use in this room")
                return await self._rejoin(connection, room, existing, player_count=len(players))

            if len(players) >= room.max_players:
                raise RoomFullError("Room is full")
            if room.status != RoomStatus.WAITING:
                raise RoomAlreadyStartedError("Game has already started")

            try:
                player = await self._call_store(
                    "create_player",
                    self._store.create_player(room.room_id, player_name, connection.connection_id, self._starting_bankroll),
                )
            except DuplicatePlayerNameError as e:
                raise NameTakenError(f"Name '{player_name}' is already in use in this room") from e

            players = [*players, player]
            self._bind(connection, SessionBinding(room.code, room.room_id, SessionRole.PLAYER, player.name, player.player_id))
            logger.info("player joined", room_code=room.code, player_id=player.player_id, player_name=player.name)

            view = self._build_view(room, players)
            await self._broadcast(room.code, StateUpdateEvent(room=view))
            await self._send_private(connection, RoomJoinedEvent(room=view, player=self._own_view(player)))
            await self._notify_hosts(room.code, PlayerJoinedEvent(player_name=player.name, player_count=len(players)))
            return player

    async def _rejoin(
        self,
        connection: ConnectionProtocol,
        room: RoomRecord,
        player: PlayerRecord,
        *,
        player_count: int,
    ) -> PlayerRecord:
        updated = await self._call_store(
            "update_player",
            self._store.update_player(player.player_id, PlayerUpdate(connection_id=connection.connection_id)),
        )
        if updated is None:
            raise PlayerNotFoundError("Player no longer exists")

        self._bind(connection, SessionBinding(room.code, room.room_id, SessionRole.PLAYER, updated.name, updated.player_id))
        players = await self._call_store("get_players", self._store.get_players(room.room_id))
        logger.info("player reconnected", room_code=room.code, player_id=updated.player_id)

        await self._send_private(
            connection,
            RoomJoinedEvent(room=self._build_view(room, players), player=self._own_view(updated)),
        )
        await self._notify_hosts(
            room.code,
            PlayerJoinedEvent(player_name=updated.name, player_count=player_count, reconnected=True),
        )
        return updated

    async def start_game(self, room_code: str) -> RoomRecord:
        """Move a waiting room to round 0. Repeated starts are ignored without a broadcast."""
        async with await self._room_lock(room_code):
            room = await self._require_room(room_code)
            if room.status != RoomStatus.WAITING:
                logger.debug("start ignored", room_code=room.code, status=room.status)
                return room

            room = await self._update_room(
                room,
                RoomUpdate(status=RoomStatus.PLAYING, current_round=0, revealed_option=None),
            )
            players = await self._call_store("get_players", self._store.get_players(room.room_id))
            logger.info("game started", room_code=room.code, players=len(players))
            await self._broadcast(room.code, GameStartedEvent(room=self._build_view(room, players)))
            return room

    async def update_bet(
        self,
        connection: ConnectionProtocol,
        room_code: str,
        distribution: Mapping[str, int],
    ) -> PlayerRecord:
        """Replace the player's in-progress distribution. Acknowledged privately, never broadcast."""
        async with await self._room_lock(room_code):
            room, player = await self._require_betting_player(connection, room_code)
            if player.confirmed:
                raise StateError("Bet already confirmed for this round", code="already_confirmed")

            question = self._catalog.get(room.current_round)
            bet = validate_distribution(distribution, question, player.money)
            updated = await self._update_player(player, PlayerUpdate(bet=bet))
            await self._send_private(connection, BetUpdatedEvent(distribution=bet, total=updated.bet_total))
            return updated

    async def confirm_bet(self, connection: ConnectionProtocol, room_code: str) -> PlayerRecord:
        async with await self._room_lock(room_code):
            room, player = await self._require_betting_player(connection, room_code)
            if player.confirmed:
                return player

            question = self._catalog.get(room.current_round)
            validate_full_distribution(player.bet, question, player.money)
            updated = await self._update_player(player, PlayerUpdate(confirmed=True))
            logger.info("bet confirmed", room_code=room.code, player_id=player.player_id)

            players = await self._call_store("get_players", self._store.get_players(room.room_id))
            await self._broadcast(room.code, StateUpdateEvent(room=self._build_view(room, players)))
            return updated

    async def reveal_result(self, room_code: str) -> RoomRecord:
        """Settle every active player against the correct option and publish the outcome."""
        async with await self._room_lock(room_code):
            room = await self._require_room(room_code)
            self._require_playing(room)
            if room.revealed_option is not None:
                raise AlreadyRevealedError("Result already revealed for this round")

            correct = self._catalog.get(room.current_round).correct_option
            players = await self._call_store("get_players", self._store.get_players(room.room_id))
            for player in players:
                if player.status != PlayerStatus.ACTIVE:
                    continue
                settlement = settle(player.bet, correct)
                # The surviving pile stays visible as the bet until the next round resets it.
                update = PlayerUpdate(
                    money=settlement.money,
                    status=PlayerStatus.ELIMINATED if settlement.eliminated else PlayerStatus.ACTIVE,
                    bet={} if settlement.eliminated else {correct: settlement.money},
                )
                try:
                    await self._update_player(player, update)
                except Exception:
                    logger.exception("failed to settle player", room_code=room.code, player_id=player.player_id)

            room = await self._update_room(room, RoomUpdate(revealed_option=correct))
            players = await self._call_store("get_players", self._store.get_players(room.room_id))
            survivors = sum(1 for p in players if p.status == PlayerStatus.ACTIVE)
            logger.info(
                "result revealed",
                room_code=room.code,
                round=room.current_round,
                correct_option=correct,
                survivors=survivors,
            )
            await self._broadcast(room.code, StateUpdateEvent(room=self._build_view(room, players)))
            return room

    async def next_question(self, room_code: str) -> RoomRecord:
        async with await self._room_lock(room_code):
            room = await self._require_room(room_code)
            self._require_playing(room)
            if room.revealed_option is None:
                raise StateError("Reveal the result before moving on", code="not_revealed")

            players = await self._call_store("get_players", self._store.get_players(room.room_id))
            active = [p for p in players if p.status == PlayerStatus.ACTIVE]

            if self._catalog.is_last(room.current_round) or not active:
                # Finish the room first: a failed winner write then leaves a finished
                # room with that survivor still active, never a half-crowned live game.
                room = await self._update_room(room, RoomUpdate(status=RoomStatus.FINISHED))
                for player in active:
                    try:
                        await self._update_player(player, PlayerUpdate(status=PlayerStatus.WINNER))
                    except Exception:
                        logger.exception("failed to crown winner", room_code=room.code, player_id=player.player_id)
                logger.info("game finished", room_code=room.code, winners=len(active))
            else:
                room = await self._update_room(
                    room,
                    RoomUpdate(current_round=room.current_round + 1, revealed_option=None),
                )
                await self._call_store(
                    "reset_bets",
                    self._store.reset_bets(room.room_id, status=PlayerStatus.ACTIVE),
                )
                logger.info("next round", room_code=room.code, round=room.current_round)

            players = await self._call_store("get_players", self._store.get_players(room.room_id))
            await self._broadcast(room.code, StateUpdateEvent(room=self._build_view(room, players)))
            return room

    async def remove_player(self, room_code: str, player_id: int) -> None:
        """Delete a player from the room and notify the removed connection, if it is live."""
        async with await self._room_lock(room_code):
            room = await self._require_room(room_code)
            player = await self._call_store("get_player", self._store.get_player(player_id))
            if player is None or player.room_id != room.room_id:
                raise PlayerNotFoundError(f"Player {player_id} not found in room {room.code}")

            await self._call_store("delete_player", self._store.delete_player(player_id))
            connection_id = self._registry.find_player_connection(player_id)
            if connection_id is not None:
                self._registry.unbind(connection_id)
                self._channel.unsubscribe(connection_id)
                await self._channel.send_to_connection(connection_id, PlayerRemovedEvent(room_code=room.code).to_wire())
            logger.info("player removed", room_code=room.code, player_id=player_id, player_name=player.name)

            players = await self._call_store("get_players", self._store.get_players(room.room_id))
            await self._broadcast(room.code, StateUpdateEvent(room=self._build_view(room, players)))

    # --- lookups and guards ---

    async def _require_room(self, room_code: str) -> RoomRecord:
        room = await self._call_store("get_room_by_code", self._store.get_room_by_code(room_code))
        if room is None:
            raise RoomNotFoundError(f"Room {room_code} not found")
        return room

    @staticmethod
    def _require_playing(room: RoomRecord) -> None:
        if room.status != RoomStatus.PLAYING:
            raise StateError(f"Room is {room.status}, not playing", code="not_playing")

    def _ensure_unbound(self, connection: ConnectionProtocol) -> None:
        if self._registry.get(connection.connection_id) is not None:
            raise StateError("Connection is already bound to a room", code="already_bound")

    async def _require_betting_player(
        self,
        connection: ConnectionProtocol,
        room_code: str,
    ) -> tuple[RoomRecord, PlayerRecord]:
        binding = self._registry.get(connection.connection_id)
        if binding is None or binding.player_id is None or binding.room_code != room_code:
            raise NotInGameError("Connection is not a player in this room")

        room = await self._require_room(room_code)
        self._require_playing(room)
        if room.revealed_option is not None:
            raise StateError("Betting is closed for this round", code="round_revealed")

        player = await self._call_store("get_player", self._store.get_player(binding.player_id))
        if player is None:
            raise PlayerNotFoundError("Player no longer exists")
        if player.status != PlayerStatus.ACTIVE:
            raise StateError("Player is no longer in the game", code="not_active")
        return room, player

    async def _update_room(self, room: RoomRecord, update: RoomUpdate) -> RoomRecord:
        updated = await self._call_store("update_room", self._store.update_room(room.room_id, update))
        if updated is None:
            raise RoomNotFoundError(f"Room {room.code} not found")
        return updated

    async def _update_player(self, player: PlayerRecord, update: PlayerUpdate) -> PlayerRecord:
        updated = await self._call_store("update_player", self._store.update_player(player.player_id, update))
        if updated is None:
            raise PlayerNotFoundError("Player no longer exists")
        return updated

    # --- delivery ---

    def _bind(self, connection: ConnectionProtocol, binding: SessionBinding) -> None:
        self._registry.bind(connection.connection_id, binding)
        self._channel.register(connection)
        self._channel.subscribe(binding.room_code, connection.connection_id)

    async def _send_private(self, connection: ConnectionProtocol, event: WireModel) -> None:
        try:
            await connection.send_message(event.to_wire())
        except (RuntimeError, OSError):
            logger.debug("private send failed", connection_id=connection.connection_id)

    async def _broadcast(self, room_code: str, event: WireModel) -> None:
        await self._channel.broadcast_to_room(room_code, event.to_wire())

    async def _notify_hosts(self, room_code: str, event: WireModel) -> None:
        message = event.to_wire()
        for connection_id in self._registry.host_connections(room_code):
            await self._channel.send_to_connection(connection_id, message)

    # --- views ---

    def _build_view(self, room: RoomRecord, players: list[PlayerRecord]) -> RoomView:
        """Project stored state to the shared room view.

        Bet amounts are only included once the round has been revealed.
        """
        revealed = room.revealed_option is not None
        current_question = None
        if room.status == RoomStatus.PLAYING:
            question = self._catalog.get(room.current_round)
            current_question = QuestionView(
                index=room.current_round,
                text=question.text,
                kind=question.kind,
                options=[OptionView(id=o.id, text=o.text) for o in question.options],
                max_options_to_bet=question.breadth_limit,
            )

        leaderboard = None
        if room.status == RoomStatus.FINISHED:
            leaderboard = [
                LeaderboardEntry(rank=rank, id=p.player_id, name=p.name, money=p.money, status=p.status)
                for rank, p in enumerate(rank_players(players), start=1)
            ]

        return RoomView(
            room_code=room.code,
            host_name=room.host_name,
            max_players=room.max_players,
            status=room.status,
            current_question_index=room.current_round,
            total_questions=len(self._catalog),
            current_question=current_question,
            revealed_answer=room.revealed_option,
            players=[self._player_view(p, include_bet=revealed) for p in players],
            leaderboard=leaderboard,
        )

    @staticmethod
    def _player_view(player: PlayerRecord, *, include_bet: bool) -> PlayerView:
        return PlayerView(
            id=player.player_id,
            name=player.name,
            money=player.money,
            status=player.status,
            has_confirmed=player.confirmed,
            current_bet=dict(player.bet) if include_bet else None,
        )

    def _own_view(self, player: PlayerRecord) -> PlayerView:
        return self._player_view(player, include_bet=True)

    def describe(self) -> dict[str, Any]:
        return {
            "connections": self._channel.connection_count,
            "bound_sessions": self._registry.connection_count,
            "room_locks": self.room_lock_count,
        }
