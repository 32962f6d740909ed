"""Telegram Bot API adapter.

Long-polls ``getUpdates`` and maps chat commands, button presses and
plain text onto session operations.  Each chat id is one conversation.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

import httpx

from opencode_bridge.config import BridgeConfig
from opencode_bridge.errors import (
    BridgeError,
    BusyError,
    ChatApiError,
    InvalidProjectError,
    NoPendingPermissionError,
    NotRunningError,
    StartupError,
)
from opencode_bridge.formatting import (
    FormatOptions,
    chunk_message,
    format_permission_request,
    format_session_status,
    format_turn_output,
)
from opencode_bridge.projects import list_projects, resolve_project
from opencode_bridge.sessions.manager import SessionManager
from opencode_bridge.sessions.notifications import (
    ErrorNotification,
    Notification,
    OutputNotification,
    PermissionNotification,
    TerminatedNotification,
)
from opencode_bridge.sessions.session import Session

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
MAX_PROJECT_BUTTONS = 10

HELP_TEXT = (
    "*OpenCode Chat Bridge*\n\n"
    "Send me messages and I'll forward them to your OpenCode session.\n\n"
    "*Commands:*\n"
    "/projects - List available projects\n"
    "/switch <project> - Switch to a project\n"
    "/status - Show session status\n"
    "/clear - Clear/reset session\n"
    "/stop - Stop current operation\n"
    "/help - Show this help\n\n"
    "Send any text to interact with OpenCode!"
)

PERMISSION_KEYBOARD = {
    "inline_keyboard": [
        [
            {"text": "Allow Once", "callback_data": "permission:once"},
            {"text": "Always", "callback_data": "permission:always"},
        ],
        [{"text": "Reject", "callback_data": "permission:reject"}],
    ]
}

_PERMISSION_REPLIES = {
    "once": "Allowed once",
    "always": "Always allowed",
    "reject": "Rejected",
}


class TelegramBotApi:
    """Minimal async client for the Bot API methods the adapter uses."""

    def __init__(
        self,
        token: str,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = TELEGRAM_API_URL,
    ) -> None:
        self._client = http_client or httpx.AsyncClient(
            base_url=f"{base_url}/bot{token}", timeout=httpx.Timeout(timeout),
        )
        self._owns_client = http_client is None

    async def call(self, method: str, **params: Any) -> Any:
        """Invoke a Bot API method and return its ``result``.

        Raises:
            ChatApiError: Transport failure or ``ok: false`` in the reply.
        """
        payload = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self._client.post(f"/{method}", json=payload)
            data = response.json()
        except httpx.HTTPError as e:
            raise ChatApiError(f"Telegram {method} request failed: {e}") from e
        except ValueError as e:
            raise ChatApiError(f"Telegram {method} returned invalid JSON") from e
        if not data.get("ok"):
            raise ChatApiError(
                f"Telegram {method} failed: {data.get('description', 'unknown error')}",
                details={"error_code": data.get("error_code")},
            )
        return data.get("result")

    async def get_updates(self, offset: Optional[int], timeout: int) -> list[dict[str, Any]]:
        return await self.call(
            "getUpdates", offset=offset, timeout=timeout,
            allowed_updates=["message", "callback_query"],
        ) or []

    async def send_message(
        self,
        chat_id: str,
        text: str,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> None:
        await self.call(
            "sendMessage", chat_id=chat_id, text=text,
            parse_mode=parse_mode, reply_markup=reply_markup,
        )

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        await self.call("answerCallbackQuery", callback_query_id=callback_query_id, text=text)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class TelegramAdapter:
    """Bridges Telegram chats to sessions owned by a SessionManager."""

    def __init__(
        self,
        config: BridgeConfig,
        manager: SessionManager,
        api: Optional[TelegramBotApi] = None,
        format_options: Optional[FormatOptions] = None,
        retry_delay: float = 5.0,
    ) -> None:
        if not config.telegram.bot_token and api is None:
            raise StartupError("TELEGRAM_BOT_TOKEN is required")
        self._config = config
        self._manager = manager
        self._api = api or TelegramBotApi(
            config.telegram.bot_token, timeout=config.telegram.poll_timeout + 10,
        )
        self._format_options = format_options or FormatOptions()
        self._retry_delay = retry_delay
        self._allowed_users = frozenset(config.telegram.allowed_users)
        self._offset: Optional[int] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._attached: dict[str, tuple[Session, Callable[[], None]]] = {}

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Telegram bot already running")
            return
        logger.info("Starting Telegram bot")
        self._poll_task = asyncio.create_task(self._poll_loop(), name="telegram-poll")

    async def stop(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        for _, unsubscribe in self._attached.values():
            unsubscribe()
        self._attached.clear()
        await self._api.aclose()
        logger.info("Telegram bot stopped")

    async def run_forever(self) -> None:
        """Poll until cancelled."""
        await self.start()
        try:
            await self._poll_task
        finally:
            await self.stop()

    async def _poll_loop(self) -> None:
        timeout = self._config.telegram.poll_timeout
        while True:
            try:
                updates = await self._api.get_updates(self._offset, timeout)
            except ChatApiError as e:
                logger.warning("getUpdates failed: %s; retrying in %.0fs", e, self._retry_delay)
                await asyncio.sleep(self._retry_delay)
                continue
            for update in updates:
                self._offset = update["update_id"] + 1
                try:
                    await self.handle_update(update)
                except Exception:
                    logger.exception("Failed to handle update %s", update.get("update_id"))

    # Outbound

    async def send_text(
        self,
        chat_id: str,
        text: str,
        markdown: bool = True,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> None:
        """Send text in chunks, retrying a chunk as plain text if Markdown is rejected."""
        for chunk in chunk_message(text):
            if not markdown:
                await self._api.send_message(chat_id, chunk, reply_markup=reply_markup)
                continue
            try:
                await self._api.send_message(
                    chat_id, chunk, parse_mode="Markdown", reply_markup=reply_markup,
                )
            except ChatApiError as e:
                logger.warning("Markdown send failed for chat %s (%s); resending as plain text", chat_id, e)
                await self._api.send_message(chat_id, chunk, reply_markup=reply_markup)

    async def _reply(self, chat_id: str, text: str) -> None:
        await self.send_text(chat_id, text, markdown=False)

    def _attach(self, chat_id: str, session: Session) -> None:
        """Route a session's notifications to its chat, once per session object."""
        attached = self._attached.get(chat_id)
        if attached is not None:
            if attached[0] is session:
                return
            attached[1]()

        async def deliver(notification: Notification) -> None:
            await self._deliver(chat_id, notification)

        self._attached[chat_id] = (session, session.subscribe(deliver))

    async def _deliver(self, chat_id: str, notification: Notification) -> None:
        if isinstance(notification, OutputNotification):
            text = format_turn_output(notification.output, self._format_options)
            if text:
                await self.send_text(chat_id, text, markdown=self._format_options.markdown)
        elif isinstance(notification, PermissionNotification):
            await self.send_text(
                chat_id, format_permission_request(notification.request),
                reply_markup=PERMISSION_KEYBOARD,
            )
        elif isinstance(notification, ErrorNotification):
            await self._reply(chat_id, f"Error: {notification.message}")
        elif isinstance(notification, TerminatedNotification):
            await self._reply(chat_id, "Session ended. Send a message to start a new one.")
        else:
            raise TypeError(f"Unhandled notification: {type(notification).__name__}")

    async def _session_for(self, chat_id: str, user_id: str) -> Session:
        session = await self._manager.resolve(chat_id, user_id)
        self._attach(chat_id, session)
        return session

    # Inbound

    def is_authorized(self, user_id: Optional[int]) -> bool:
        if user_id is None:
            return False
        return not self._allowed_users or user_id in self._allowed_users

    async def handle_update(self, update: dict[str, Any]) -> None:
        if "callback_query" in update:
            await self._handle_callback(update["callback_query"])
            return
        message = update.get("message")
        if not message or "text" not in message:
            return
        chat_id = str(message["chat"]["id"])
        user_id = (message.get("from") or {}).get("id")
        if not self.is_authorized(user_id):
            logger.warning("Unauthorized access attempt from user %s", user_id)
            await self._reply(chat_id, "You are not authorized to use this bot.")
            return

        text = message["text"]
        if text.startswith("/"):
            command, _, args = text.partition(" ")
            command = command[1:].split("@", 1)[0].lower()
            handler = self._commands.get(command)
            if handler is not None:
                await handler(self, chat_id, str(user_id), args.strip())
                return
        await self._handle_text(chat_id, str(user_id), text)

    async def _handle_text(self, chat_id: str, user_id: str, text: str) -> None:
        logger.info("Received message from %s: %.50s", chat_id, text)
        session = await self._session_for(chat_id, user_id)
        if not session.is_running:
            await self._reply(chat_id, "Starting OpenCode session...")
            try:
                await session.start()
            except StartupError as e:
                logger.error("Failed to start session for %s: %s", chat_id, e)
                await self._reply(chat_id, f"Failed to start OpenCode: {e.message}")
                return
            await self._reply(chat_id, "OpenCode session ready!")
        try:
            await session.send_message(text)
        except BusyError as e:
            await self._reply(chat_id, e.message)
        except BridgeError as e:
            logger.error("Failed to send message for %s: %s", chat_id, e)
            await self._reply(chat_id, f"Failed to send message to OpenCode: {e.message}")

    async def _cmd_start(self, chat_id: str, user_id: str, args: str) -> None:
        await self.send_text(chat_id, HELP_TEXT)
        await self._session_for(chat_id, user_id)

    async def _cmd_projects(self, chat_id: str, user_id: str, args: str) -> None:
        projects_dir = self._config.sessions.projects_dir
        projects = list_projects(projects_dir)
        if not projects:
            await self._reply(chat_id, f"No projects found in {projects_dir}")
            return
        buttons = [
            [{"text": name, "callback_data": f"switch:{name}"}]
            for name in projects[:MAX_PROJECT_BUTTONS]
        ]
        await self.send_text(
            chat_id,
            "*Available Projects*\n\nTap to switch, or use `/switch <name>`",
            reply_markup={"inline_keyboard": buttons},
        )

    async def _cmd_switch(self, chat_id: str, user_id: str, args: str) -> None:
        if not args:
            await self.send_text(chat_id, "Usage: `/switch <project-name>`")
            return
        await self._switch_to_project(chat_id, user_id, args)

    async def _switch_to_project(self, chat_id: str, user_id: str, name: str) -> None:
        try:
            path = str(resolve_project(self._config.sessions.projects_dir, name))
        except InvalidProjectError:
            await self._reply(chat_id, f"Project not found: {name}")
            return

        session = self._manager.get(chat_id) or await self._manager.restore(chat_id)
        try:
            if session is not None:
                self._attach(chat_id, session)
                await self._reply(chat_id, f"Switching to project: {name}...")
                await self._manager.switch_project(chat_id, path)
                await self._reply(chat_id, f"Switched to project: {name}")
            else:
                session = await self._manager.get_or_create(chat_id, user_id, path)
                self._attach(chat_id, session)
                await session.start()
                await self._manager.persist(chat_id)
                await self._reply(chat_id, f"Started session in: {name}")
        except BridgeError as e:
            logger.error("Error switching %s to %s: %s", chat_id, name, e)
            await self._reply(chat_id, f"Failed to switch to project: {name}")

    async def _cmd_status(self, chat_id: str, user_id: str, args: str) -> None:
        session = self._manager.get(chat_id)
        if session is None:
            await self._reply(chat_id, "No active session. Send a message to start one.")
            return
        snapshot = session.snapshot()
        lines = [
            "Session Status",
            "",
            f"Status: {format_session_status(snapshot.status)}",
            f"Process: {'Running' if session.is_running else 'Stopped'}",
            f"Project: {snapshot.project_path}",
            f"OpenCode Session: {snapshot.agent_session_id or 'N/A'}",
            f"Created: {snapshot.created_at.isoformat()}",
            f"Last Activity: {snapshot.last_activity_at.isoformat()}",
        ]
        if session.pending_permission is not None:
            lines.append(f"Pending permission: {session.pending_permission.title}")
        await self._reply(chat_id, "\n".join(lines))

    async def _cmd_clear(self, chat_id: str, user_id: str, args: str) -> None:
        attached = self._attached.pop(chat_id, None)
        if attached is not None:
            attached[1]()
        if await self._manager.clear(chat_id):
            await self._reply(chat_id, "Session cleared. Send a message to start a new one.")
        else:
            await self._reply(chat_id, "No active session to clear.")

    async def _cmd_stop(self, chat_id: str, user_id: str, args: str) -> None:
        session = self._manager.get(chat_id)
        if session is None or not session.is_running:
            await self._reply(chat_id, "No running operation to stop.")
            return
        try:
            await session.interrupt()
        except NotRunningError:
            await self._reply(chat_id, "No running operation to stop.")
            return
        except BridgeError as e:
            logger.error("Error interrupting %s: %s", chat_id, e)
            await self._reply(chat_id, "Failed to interrupt operation")
            return
        await self._reply(chat_id, "Operation interrupted")

    _commands = {
        "start": _cmd_start,
        "help": _cmd_start,
        "projects": _cmd_projects,
        "switch": _cmd_switch,
        "status": _cmd_status,
        "clear": _cmd_clear,
        "stop": _cmd_stop,
    }

    async def _handle_callback(self, query: dict[str, Any]) -> None:
        user_id = (query.get("from") or {}).get("id")
        message = query.get("message") or {}
        chat_id = str((message.get("chat") or {}).get("id", user_id))
        data = query.get("data") or ""
        if not self.is_authorized(user_id):
            await self._api.answer_callback_query(query["id"], text="Not authorized")
            return
        await self._api.answer_callback_query(query["id"])

        if data.startswith("switch:"):
            await self._switch_to_project(chat_id, str(user_id), data[len("switch:"):])
            return

        session = self._manager.get(chat_id)
        if session is None:
            return
        try:
            if data.startswith("permission:"):
                decision = data[len("permission:"):]
                if decision not in _PERMISSION_REPLIES:
                    logger.warning("Unknown permission callback %r", data)
                    return
                await session.reply_to_latest_permission(decision)
                await self._reply(chat_id, _PERMISSION_REPLIES[decision])
            elif data in ("confirm:yes", "confirm:no"):
                await session.send_confirmation(data == "confirm:yes")
            else:
                logger.warning("Unknown callback data %r", data)
        except NoPendingPermissionError as e:
            await self._reply(chat_id, e.message)
        except BridgeError as e:
            logger.error("Error replying to permission for %s: %s", chat_id, e)
            await self._reply(chat_id, "Failed to respond to permission")
