"""BridgeDaemon: the service object that owns every bridge component.

One instance is built at start-up (see :func:`claude_mirror.setup.setup_bridge`)
and passed by reference to the bot, the socket listener and the status API.
Nothing in the package keeps process-wide state outside of it.

Inbound flow::

    hook --NDJSON--> SocketServer --> handle_message()
        --> SessionRegistry.ensure_session()     (activity, reactivation)
        --> thread for the session               (ThreadCreationLock)
        --> per-event handler                    (table keyed by EventType)
        --> DeliveryPipeline.submit()

Reply flow::

    Discord thread reply --> handle_chat_message() --> tmux
    Approval button      --> handle_decision()     --> ApprovalCorrelator
    /abort command       --> abort_session()       --> tmux, thread closed
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .bridge.approvals import DEFAULT_APPROVAL_TIMEOUT, ApprovalCorrelator
from .bridge.dedup import EchoFilter
from .bridge.socket_server import SocketServer
from .bridge.thread_lock import ThreadCreationLock
from .bridge.types import ApprovalOutcome, BridgeMessage, EventType, parse_timestamp
from .chat import formatting as fmt
from .chat.base import Button, ButtonStyle
from .chat.chunker import DEFAULT_CHUNK_SIZE, chunk_with_markers
from .delivery.pipeline import DeliveryPipeline
from .errors import ChatError, InjectionError, ThreadCreationTimeout

if TYPE_CHECKING:
    from .bridge.injector import TerminalInjector
    from .chat.base import ChatClient
    from .database.repository import Session
    from .registry import SessionRegistry

logger = logging.getLogger(__name__)

# Thread replies that map to a key press instead of typed text.
INTERRUPT_COMMANDS = frozenset({"stop", "cancel", "abort", "esc", "escape"})
KILL_COMMANDS = frozenset({"kill", "exit", "quit", "ctrl+c", "ctrl-c", "^c"})

# Upper bound on how long shutdown waits for queued messages.
SHUTDOWN_FLUSH_SECONDS = 5.0

# Hooks mark input they relayed from Discord with this source tag.
CHAT_SOURCE = "discord"


@dataclass
class EventContext:
    """What a handler needs beyond the envelope itself."""

    session: Session
    destination: str | None
    new_thread: bool = False
    reactivated: bool = False


Handler = Callable[[BridgeMessage, EventContext], Awaitable[BridgeMessage | None]]


class BridgeDaemon:
    """Dispatches hook events to Discord and Discord replies to terminals."""

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        client: ChatClient,
        injector: TerminalInjector,
        socket_path: str,
        pipeline: DeliveryPipeline | None = None,
        rate_limit: float = 1.0,
        verbose: bool = True,
        use_threads: bool = True,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        approval_timeout: float = DEFAULT_APPROVAL_TIMEOUT,
        echo_filter: EchoFilter | None = None,
        thread_lock: ThreadCreationLock | None = None,
    ) -> None:
        self.registry = registry
        self.client = client
        self.injector = injector
        self.pipeline = pipeline or DeliveryPipeline(client, rate_limit=rate_limit)
        self.verbose = verbose
        self.use_threads = use_threads
        self.chunk_size = chunk_size
        self.approvals = ApprovalCorrelator(default_timeout=approval_timeout)
        self.echo_filter = echo_filter or EchoFilter()
        self.thread_lock = thread_lock or ThreadCreationLock()
        self.server = SocketServer(socket_path, self.handle_message)

        self.running = False
        self._started_at: float | None = None
        self._announced = False
        # Sessions whose thread could not be created because the channel
        # does not support threads; they post to the main channel.
        self._threadless: set[str] = set()
        self._compacting: set[str] = set()

        self._handlers: dict[EventType, Handler] = {
            EventType.SESSION_START: self._on_session_start,
            EventType.SESSION_END: self._on_session_end,
            EventType.USER_INPUT: self._on_user_input,
            EventType.AGENT_RESPONSE: self._on_agent_response,
            EventType.TOOL_START: self._on_tool_start,
            EventType.TOOL_RESULT: self._on_tool_result,
            EventType.APPROVAL_REQUEST: self._on_approval_request,
            EventType.ERROR: self._on_error,
            EventType.TURN_COMPLETE: self._on_turn_complete,
            EventType.PRE_COMPACT: self._on_pre_compact,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start accepting hook connections."""
        await self.server.start()
        self.running = True
        self._started_at = time.monotonic()
        logger.info("Bridge daemon started")

    def announce_startup(self) -> None:
        """Post the start-up notice to the main channel (once per process)."""
        if self._announced:
            return
        self._announced = True
        self.pipeline.submit(None, fmt.STARTUP_NOTICE)

    async def stop(self, flush_timeout: float = SHUTDOWN_FLUSH_SECONDS) -> None:
        """Stop listening, post the shutdown notice and drain what we can."""
        if not self.running:
            return
        self.running = False
        await self.server.close()
        self.pipeline.submit(None, fmt.SHUTDOWN_NOTICE)
        try:
            await asyncio.wait_for(self.pipeline.flush_all(), timeout=flush_timeout)
        except TimeoutError:
            logger.warning("Shutdown flush did not finish within %.0fs", flush_timeout)
        await self.pipeline.close()
        logger.info("Bridge daemon stopped")

    async def status(self) -> dict[str, Any]:
        stats = await self.registry.stats()
        uptime = time.monotonic() - self._started_at if self._started_at else 0.0
        return {
            "running": self.running,
            "clients": self.server.client_count,
            "active_sessions": stats["active"],
            "ended_sessions": stats["ended"],
            "pending_approvals": self.approvals.pending_count(),
            "queued_messages": self.pipeline.queue_depth(),
            "dropped_messages": self.pipeline.dropped,
            "uptime_seconds": round(uptime, 1),
        }

    # ------------------------------------------------------------------
    # Inbound: hook events
    # ------------------------------------------------------------------

    async def handle_message(self, msg: BridgeMessage) -> BridgeMessage | None:
        """Process one envelope from a hook; return a reply envelope if any."""
        handler = self._handlers.get(msg.type)
        if handler is None:
            logger.warning("No handler for %s message; ignoring", msg.type.value)
            return None

        if msg.type is EventType.SESSION_END:
            return await self._on_session_end(msg)

        ensured = await self.registry.ensure_session(
            msg.session_id,
            hostname=msg.meta_str("hostname"),
            project_dir=msg.meta_str("projectDir"),
            terminal_target=msg.meta_str("tmuxTarget"),
            terminal_socket=msg.meta_str("tmuxSocket"),
        )
        session = ensured.session
        try:
            destination = await self._destination_for(session)
        except (ThreadCreationTimeout, ChatError) as e:
            logger.error(
                "Dropping %s for session %s: no thread available (%s)",
                msg.type.value,
                msg.session_id,
                e,
            )
            return self._creation_failed_reply(msg, str(e))

        ctx = EventContext(
            session=session,
            destination=destination,
            new_thread=session.thread_id is None and destination is not None,
            reactivated=ensured.reactivated,
        )
        return await handler(msg, ctx)

    async def _destination_for(self, session: Session) -> str | None:
        """Thread id for the session, creating it on first use. None = main channel."""
        if not self.use_threads or session.id in self._threadless:
            return None
        if session.thread_id is not None:
            return session.thread_id
        return await self.thread_lock.run(session.id, lambda: self._create_thread(session))

    async def _create_thread(self, session: Session) -> str | None:
        # Another event may have bound a thread between our read and the lock.
        current = await self.registry.get(session.id)
        if current is not None and current.thread_id is not None:
            return current.thread_id

        name = fmt.thread_name(session.hostname, session.project_dir, session.id)
        thread_id = await self.client.create_thread(name)
        if thread_id is None:
            self._threadless.add(session.id)
            return None

        bound = await self.registry.bind_thread(session.id, thread_id)
        # Queued before any waiter resumes, so it is the thread's first message.
        self._post(
            bound,
            fmt.format_session_start(
                session.id,
                hostname=session.hostname,
                project_dir=session.project_dir,
                terminal_target=session.terminal_target,
            ),
        )
        return bound

    def _creation_failed_reply(self, msg: BridgeMessage, detail: str) -> BridgeMessage:
        if msg.type is EventType.APPROVAL_REQUEST:
            return BridgeMessage(
                type=EventType.APPROVAL_RESPONSE,
                session_id=msg.session_id,
                content=ApprovalOutcome.TIMEOUT.value,
                metadata={"fallback": "ask", "error": detail},
            )
        return BridgeMessage(
            type=EventType.ERROR,
            session_id=msg.session_id,
            content=f"Could not create a Discord thread for this session: {detail}",
        )

    # -- per-event handlers ---------------------------------------------

    async def _on_session_start(self, msg: BridgeMessage, ctx: EventContext) -> None:
        session = ctx.session
        if ctx.destination is None:
            self._post(
                None,
                fmt.format_session_start(
                    session.id,
                    hostname=session.hostname,
                    project_dir=session.project_dir,
                    terminal_target=session.terminal_target,
                ),
            )
        elif not ctx.new_thread:
            self._post(ctx.destination, fmt.format_session_resumed(session.id))

    async def _on_session_end(
        self,
        msg: BridgeMessage,
        ctx: EventContext | None = None,
    ) -> None:
        session = await self.registry.get(msg.session_id)
        if session is None:
            logger.debug("session_end for unknown session %s; ignoring", msg.session_id)
            return
        if not session.is_active:
            logger.debug("session_end for already ended session %s; ignoring", session.id)
            return
        await self.registry.touch(session.id)
        await self._close_session(
            session,
            fmt.format_session_end(session.id, _seconds_since(session.created_at)),
        )

    async def _on_user_input(self, msg: BridgeMessage, ctx: EventContext) -> None:
        if msg.meta_str("source") == CHAT_SOURCE:
            return
        if self.echo_filter.is_echo(msg.session_id, msg.content):
            return
        if msg.content.strip():
            self._post(ctx.destination, fmt.format_user_input(msg.content))

    async def _on_agent_response(self, msg: BridgeMessage, ctx: EventContext) -> None:
        if msg.content.strip():
            self._post(ctx.destination, fmt.format_agent_response(msg.content))

    async def _on_tool_start(self, msg: BridgeMessage, ctx: EventContext) -> None:
        if not self.verbose:
            return
        tool = msg.meta_str("tool") or msg.content or "tool"
        self._post(ctx.destination, fmt.format_tool_start(tool, msg.metadata.get("input")))

    async def _on_tool_result(self, msg: BridgeMessage, ctx: EventContext) -> None:
        if not self.verbose:
            return
        tool = msg.meta_str("tool") or "tool"
        output = msg.metadata.get("output", msg.content)
        self._post(
            ctx.destination,
            fmt.format_tool_result(tool, msg.metadata.get("input"), output),
        )

    async def _on_approval_request(
        self,
        msg: BridgeMessage,
        ctx: EventContext,
    ) -> BridgeMessage:
        approval = self.approvals.create(
            msg.session_id,
            msg.content,
            timeout=_positive_float(msg.metadata.get("timeoutSeconds")),
        )
        buttons = [
            Button("✅ Approve", f"approve:{approval.id}", ButtonStyle.SUCCESS),
            Button("❌ Reject", f"reject:{approval.id}", ButtonStyle.DANGER),
            Button("🛑 Abort", f"abort:{approval.id}", ButtonStyle.SECONDARY),
        ]
        self._post(ctx.destination, fmt.format_approval_request(msg.content), buttons)

        outcome = await self.approvals.wait(approval.id)
        metadata: dict[str, Any] = {"approvalId": approval.id}
        if outcome is ApprovalOutcome.TIMEOUT:
            metadata["fallback"] = "ask"
            self._post(ctx.destination, fmt.format_approval_timeout())
        return BridgeMessage(
            type=EventType.APPROVAL_RESPONSE,
            session_id=msg.session_id,
            content=outcome.value,
            metadata=metadata,
        )

    async def _on_error(self, msg: BridgeMessage, ctx: EventContext) -> None:
        self._post(ctx.destination, fmt.format_error(msg.content or "unknown error"))

    async def _on_turn_complete(self, msg: BridgeMessage, ctx: EventContext) -> None:
        if msg.session_id in self._compacting:
            self._compacting.discard(msg.session_id)
            self._post(ctx.destination, fmt.COMPACTION_COMPLETE)

    async def _on_pre_compact(self, msg: BridgeMessage, ctx: EventContext) -> None:
        self._compacting.add(msg.session_id)
        self._post(ctx.destination, fmt.format_compaction_started(msg.meta_str("trigger")))

    # ------------------------------------------------------------------
    # Inbound: Discord
    # ------------------------------------------------------------------

    async def handle_decision(self, custom_id: str) -> bool:
        """Resolve an approval from a button's custom_id. Returns True if it was pending."""
        decision, _, approval_id = custom_id.partition(":")
        try:
            outcome = ApprovalOutcome(decision)
        except ValueError:
            logger.warning("Ignoring unrecognised decision %r", custom_id)
            return False
        if outcome is ApprovalOutcome.TIMEOUT or not approval_id:
            logger.warning("Ignoring unrecognised decision %r", custom_id)
            return False
        return self.approvals.resolve(approval_id, outcome)

    async def handle_chat_message(self, thread_id: str, text: str) -> bool:
        """Deliver a thread reply to the session's terminal. Returns True on success."""
        session = await self.registry.get_by_thread(thread_id)
        if session is None:
            logger.debug("Reply in thread %s has no active session; ignoring", thread_id)
            return False
        text = text.strip()
        if not text:
            return False

        command = text.lower().lstrip("/")
        key: tuple[str, str] | None = None
        if command in INTERRUPT_COMMANDS:
            key = ("Escape", "Escape")
        elif command in KILL_COMMANDS:
            key = ("C-c", "Ctrl-C")

        if not session.terminal_target:
            self._post(thread_id, fmt.format_injection_failure(None, "no pane"))
            return False

        try:
            if key is not None:
                await self.injector.send_key(
                    session.terminal_target, key[0], session.terminal_socket
                )
                self._post(thread_id, fmt.format_key_sent(key[1]))
            else:
                self.echo_filter.record(session.id, text)
                await self.injector.inject(session.terminal_target, text, session.terminal_socket)
        except InjectionError as e:
            logger.warning("Injection into %s failed: %s", session.terminal_target, e)
            self._post(thread_id, fmt.format_injection_failure(session.terminal_target, str(e)))
            return False

        await self.registry.touch(session.id)
        return True

    async def abort_session(self, session_id: str) -> bool:
        """Stop a session from Discord and end it.

        Open approvals for the session resolve as aborted, the tmux pane gets
        Ctrl-C, and the thread is closed with a notice. Returns False for an
        unknown or already ended session.
        """
        session = await self.registry.get(session_id)
        if session is None or not session.is_active:
            return False
        for approval in self.approvals.pending_for(session.id):
            self.approvals.resolve(approval.id, ApprovalOutcome.ABORT)
        if session.terminal_target:
            try:
                await self.injector.send_key(
                    session.terminal_target, "C-c", session.terminal_socket
                )
            except InjectionError as e:
                logger.warning("Could not interrupt %s: %s", session.terminal_target, e)
        logger.info("Session %s aborted from Discord", session.id)
        await self._close_session(session, fmt.format_session_aborted(session.id))
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _close_session(self, session: Session, notice: str) -> None:
        """Post *notice*, wait for it, close the thread and mark the session ended."""
        self._compacting.discard(session.id)
        destination = session.thread_id
        if destination is None and self.use_threads and session.id not in self._threadless:
            # Never got a thread; nothing to post or close.
            await self.registry.mark_ended(session.id)
            return

        self._post(destination, notice)
        await self.pipeline.flush(destination)
        if destination is not None:
            try:
                await self.client.close_thread(destination)
            except ChatError as e:
                logger.warning("Could not close thread %s: %s", destination, e)
        await self.registry.mark_ended(session.id)

    def _post(
        self,
        destination: str | None,
        text: str,
        buttons: list[Button] | None = None,
    ) -> None:
        """Submit *text* in numbered chunks; buttons ride on the last chunk."""
        chunks = chunk_with_markers(text, self.chunk_size)
        for i, chunk in enumerate(chunks):
            last = i == len(chunks) - 1
            self.pipeline.submit(destination, chunk, buttons if last else None)


def _positive_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value) if value > 0 else None


def _seconds_since(iso: str) -> float | None:
    try:
        started = parse_timestamp(iso)
    except ValueError:
        return None
    return (datetime.now(UTC) - started).total_seconds()
