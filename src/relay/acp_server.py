"""ACP server implementation for Relay.

Relay sits between the editor and an agent engine, translating the engine's
event stream into ACP session updates.

Architecture: Editor <-> Relay (ACP) <-> Agent engine (Claude Agent SDK)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from acp import (
    InitializeResponse,
    NewSessionResponse,
    PromptResponse,
    RequestError,
    run_agent,
    text_block,
    update_agent_message,
)
from acp.interfaces import Agent, Client
from acp.schema import (
    AgentCapabilities,
    AuthenticateResponse,
    ClientCapabilities,
    HttpMcpServer,
    Implementation,
    ListSessionsResponse,
    LoadSessionResponse,
    McpServerStdio,
    PromptCapabilities,
    SetSessionModelResponse,
    SetSessionModeResponse,
    SseMcpServer,
)

from relay.config import RelayConfig
from relay.content import ClientFileResolver, FileResolver, LocalFileResolver
from relay.engine import AgentEngine, ClaudeAgentEngine
from relay.modes import DEFAULT_MODE_ID, build_mode_state, is_known_mode
from relay.session import BridgeSession
from relay.translator import PromptBlock, extract_prompt_images, extract_prompt_text

logger = logging.getLogger(__name__)

EngineFactory = Callable[[str, RelayConfig], AgentEngine]


def _claude_engine(cwd: str, config: RelayConfig) -> AgentEngine:
    return ClaudeAgentEngine(cwd=cwd, model=config.model)


class RelayAgent(Agent):
    """ACP agent hosting one :class:`BridgeSession` per ACP session."""

    _conn: Client

    def __init__(
        self,
        config: RelayConfig | None = None,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        """Initialize Relay agent.

        Args:
            config: Settings applied to every session (defaults if not specified).
            engine_factory: Builds the agent engine for a session from its cwd
                (Claude Agent SDK engine if not specified).
        """
        self.config = config or RelayConfig()
        self.sessions: dict[str, BridgeSession] = {}
        self._engine_factory = engine_factory or _claude_engine
        self._client_capabilities: ClientCapabilities | None = None

    def on_connect(self, conn: Client) -> None:
        """Handle connection from editor."""
        self._conn = conn

    def _get_session(self, session_id: str) -> BridgeSession:
        """Look up a session.

        Raises:
            RequestError: If the session id is unknown.
        """
        session = self.sessions.get(session_id)
        if session is None:
            raise RequestError.invalid_params({"sessionId": session_id, "message": "Unknown session"})
        return session

    def _client_can_read_files(self) -> bool:
        caps = self._client_capabilities
        return bool(caps and caps.fs and caps.fs.read_text_file)

    def _file_resolver(self, session_id: str) -> FileResolver:
        if self.config.use_client_fs and self._client_can_read_files():
            return ClientFileResolver(self._conn, session_id)
        return LocalFileResolver()

    async def initialize(
        self,
        protocol_version: int,
        client_capabilities: ClientCapabilities | None = None,
        client_info: Implementation | None = None,
        **kwargs: Any,
    ) -> InitializeResponse:
        """Handle initialization request."""
        logger.info(f"Initializing with protocol version {protocol_version}")
        self._client_capabilities = client_capabilities
        return InitializeResponse(
            protocol_version=protocol_version,
            agent_capabilities=AgentCapabilities(
                prompt_capabilities=PromptCapabilities(
                    image=True,
                    embedded_context=True,
                ),
            ),
        )

    async def new_session(
        self,
        cwd: str,
        mcp_servers: list[HttpMcpServer | SseMcpServer | McpServerStdio],
        **kwargs: Any,
    ) -> NewSessionResponse:
        """Create a new session."""
        logger.info(f"Creating new session, cwd={cwd}")
        session_id = uuid4().hex
        self.sessions[session_id] = BridgeSession(
            session_id,
            self._conn,
            self._engine_factory(cwd, self.config),
            workspace_path=cwd,
            config=self.config,
            file_resolver=self._file_resolver(session_id),
        )
        logger.info(f"Session {session_id} created")
        return NewSessionResponse(session_id=session_id, modes=build_mode_state(DEFAULT_MODE_ID))

    async def load_session(
        self,
        cwd: str,
        mcp_servers: list[HttpMcpServer | SseMcpServer | McpServerStdio],
        session_id: str,
        **kwargs: Any,
    ) -> LoadSessionResponse | None:
        """Load an existing session."""
        return None

    async def list_sessions(
        self,
        cursor: str | None = None,
        cwd: str | None = None,
        **kwargs: Any,
    ) -> ListSessionsResponse:
        """List available sessions."""
        return ListSessionsResponse(sessions=[])

    async def set_session_mode(
        self,
        mode_id: str,
        session_id: str,
        **kwargs: Any,
    ) -> SetSessionModeResponse | None:
        """Switch a session to another mode.

        Raises:
            RequestError: If the session id or the mode is unknown.
        """
        session = self._get_session(session_id)
        if not is_known_mode(mode_id):
            raise RequestError.invalid_params({"modeId": mode_id, "message": "Unknown mode"})
        await session.set_mode(mode_id)
        return SetSessionModeResponse()

    async def set_session_model(
        self,
        model_id: str,
        session_id: str,
        **kwargs: Any,
    ) -> SetSessionModelResponse | None:
        """Switch the model a session's agent runs on.

        Raises:
            RequestError: If the session id is unknown.
        """
        session = self._get_session(session_id)
        await session.set_model(model_id)
        return SetSessionModelResponse()

    async def authenticate(
        self,
        method_id: str,
        **kwargs: Any,
    ) -> AuthenticateResponse | None:
        """Handle authentication."""
        return None

    async def prompt(
        self,
        prompt: list[PromptBlock],
        session_id: str,
        **kwargs: Any,
    ) -> PromptResponse:
        """Run a prompt turn and return its stop reason.

        Raises:
            RequestError: If the session id is unknown.
        """
        logger.info(f"Received prompt for session {session_id}")
        session = self._get_session(session_id)

        prompt_text = extract_prompt_text(prompt)
        if not prompt_text.strip():
            chunk = update_agent_message(text_block("Error: Empty prompt"))
            await self._conn.session_update(session_id=session_id, update=chunk)
            return PromptResponse(stop_reason="end_turn")

        try:
            stop_reason = await session.prompt(prompt_text, extract_prompt_images(prompt) or None)
        except Exception as e:
            logger.exception(f"Prompt failed: {e}")
            await session.buffer.flush()
            chunk = update_agent_message(text_block(f"Error: {e}"))
            await self._conn.session_update(session_id=session_id, update=chunk)
            return PromptResponse(stop_reason="refusal")

        return PromptResponse(stop_reason=stop_reason)

    async def cancel(
        self,
        session_id: str,
        **kwargs: Any,
    ) -> None:
        """Cancel current operation. Unknown sessions are ignored."""
        session = self.sessions.get(session_id)
        if session is None:
            logger.debug(f"Cancel for unknown session {session_id}")
            return
        await session.cancel()

    async def close(self) -> None:
        """Dispose every session."""
        sessions, self.sessions = self.sessions, {}
        for session in sessions.values():
            await session.dispose()

    async def ext_method(
        self,
        method: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Handle extension method."""
        return {}

    async def ext_notification(
        self,
        method: str,
        params: dict[str, Any],
    ) -> None:
        """Handle extension notification."""
        pass


async def run_server(config: RelayConfig | None = None) -> None:
    """Run the Relay ACP server on stdio.

    Args:
        config: Session settings (defaults if not specified).
    """
    from acp import stdio_streams

    agent = RelayAgent(config=config)

    # 16MB line limit for base64-encoded images
    output_stream, input_stream = await stdio_streams(limit=16 * 1024 * 1024)
    try:
        await run_agent(agent, input_stream=input_stream, output_stream=output_stream)
    finally:
        await agent.close()

