"""
Completion oracle clients.

The oracle is the opaque reasoning service that turns a conversation into the
next assistant message plus a structured extraction. Two providers are
supported:

- assistants: Assistants-style threads, messages and runs. The thread is
  created once per session and reused; runs are polled at a fixed interval
  with a bounded total wait.
- chat: stateless chat completions. The full conversation is sent on every
  call; a locally minted context id is echoed back so callers can treat both
  providers alike.

Clients never retry. Transport failures raise OracleUnavailableError, runs
that do not finish in time raise OracleTimeoutError, and runs that end in a
failed state raise OracleRunFailedError. A failed assistants invocation
cancels its run and removes the messages it appended, so the same turn can be
retried on the same thread.
"""

import asyncio
import math
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import structlog

from assessment.core.config import PipelineConfig, pipeline_config, settings
from assessment.core.exceptions import (
    ConfigurationError,
    OracleError,
    OracleInvalidResponseError,
    OracleRunFailedError,
    OracleTimeoutError,
    OracleUnavailableError,
)
from assessment.domain.models.stage_outputs import stage_json_schema
from assessment.domain.models.stages import AgentType

log = structlog.get_logger(__name__)


PENDING_RUN_STATUSES = frozenset({"queued", "in_progress", "cancelling"})
FAILED_RUN_STATUSES = frozenset(
    {"failed", "cancelled", "expired", "incomplete", "requires_action"}
)


# =============================================================================
# Request and Response
# =============================================================================


@dataclass
class OracleContext:
    """Conversation handed to the oracle for one stage invocation.

    Attributes:
        messages: Full ordered conversation ({"role", "content"} dicts),
            including the messages of this turn
        new_messages: Messages of this turn not yet known to the oracle
            (optional context preamble + the latest user message)
        thread_id: Oracle thread from earlier turns, or None on first call
    """

    messages: List[Dict[str, str]]
    new_messages: List[Dict[str, str]]
    thread_id: Optional[str] = None


@dataclass
class OracleResponse:
    """Standardized oracle response."""

    content: str
    thread_id: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    run_id: Optional[str] = None


class OracleClient(ABC):
    """Abstract base for completion oracle providers."""

    @abstractmethod
    async def invoke(self, stage: AgentType, context: OracleContext) -> OracleResponse:
        """
        Run one stage against the oracle.

        Args:
            stage: Stage whose assistant/instructions should answer
            context: Conversation and thread information

        Returns:
            OracleResponse with the raw assistant text and the thread id to
            reuse on the next call
        """
        pass


def _response_format(stage: AgentType, mode: str) -> Dict[str, Any]:
    if mode == "json_object":
        return {"type": "json_object"}
    return {
        "type": "json_schema",
        "json_schema": {
            "name": f"{stage.value}_output",
            "schema": stage_json_schema(stage),
        },
    }


def _normalize_usage(raw: Optional[Dict[str, Any]]) -> Dict[str, int]:
    raw = raw or {}
    return {
        "prompt_tokens": int(raw.get("prompt_tokens") or 0),
        "completion_tokens": int(raw.get("completion_tokens") or 0),
        "total_tokens": int(raw.get("total_tokens") or 0),
    }


# =============================================================================
# Assistants Client
# =============================================================================


class AssistantsOracleClient(OracleClient):
    """Assistants-style oracle: threads, messages, runs.

    Uses httpx for async HTTP calls. One AsyncClient is opened per invocation.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        assistant_ids: Optional[Dict[str, Optional[str]]] = None,
        poll_interval: Optional[float] = None,
        max_wait: Optional[float] = None,
        timeout: Optional[float] = None,
        response_format: Optional[str] = None,
    ):
        """
        Initialize Assistants client.

        Args:
            api_key: API key (defaults to settings.openai_api_key)
            base_url: API base URL (defaults to settings.oracle_base_url)
            assistant_ids: Stage tag -> assistant id (defaults to env
                overrides, then pipeline_config.yaml)
            poll_interval: Seconds between run status polls
            max_wait: Upper bound on total seconds spent polling one run
            timeout: Per-request timeout in seconds
            response_format: "json_schema" or "json_object"

        Raises:
            ConfigurationError: If API key is not configured
        """
        self.api_key = api_key or settings.openai_api_key
        self.base_url = (base_url or settings.oracle_base_url).rstrip("/")
        self.assistant_ids = assistant_ids or assistant_ids_from_config(
            pipeline_config
        )
        self.poll_interval = (
            settings.oracle_poll_interval_seconds
            if poll_interval is None
            else poll_interval
        )
        self.max_wait = settings.oracle_max_wait_seconds if max_wait is None else max_wait
        self.timeout = timeout or settings.oracle_request_timeout
        self.response_format = response_format or settings.oracle_response_format

        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured. Set it in .env.")

        log.info(
            "oracle_client_initialized",
            provider="assistants",
            poll_interval=self.poll_interval,
            max_wait=self.max_wait,
        )

    @property
    def max_polls(self) -> int:
        """Number of status polls allowed before giving up."""
        if self.poll_interval <= 0:
            return max(1, int(self.max_wait))
        return max(1, math.ceil(self.max_wait / self.poll_interval))

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "assistants=v2",
        }

    def _assistant_id(self, stage: AgentType) -> str:
        assistant_id = self.assistant_ids.get(stage.value)
        if not assistant_id:
            raise ConfigurationError(
                f"No oracle assistant configured for stage '{stage.value}'",
                stage=stage.value,
            )
        return assistant_id

    async def _post(
        self, client: httpx.AsyncClient, path: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        return response.json()

    async def _get(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        response = await client.get(f"{self.base_url}{path}", params=params)
        response.raise_for_status()
        return response.json()

    async def _cancel_run(
        self, client: httpx.AsyncClient, thread_id: str, run_id: str
    ) -> None:
        """Best-effort cancel so the thread accepts messages on retry."""
        try:
            await self._post(client, f"/threads/{thread_id}/runs/{run_id}/cancel", {})
        except httpx.HTTPError as e:
            log.warning(
                "oracle_run_cancel_failed",
                thread_id=thread_id,
                run_id=run_id,
                error=str(e),
            )
            return
        log.info("oracle_run_cancelled", thread_id=thread_id, run_id=run_id)

    async def _rollback_messages(
        self, client: httpx.AsyncClient, thread_id: str, message_ids: List[str]
    ) -> None:
        """Best-effort removal of the messages a failed invocation appended.

        Keeps the thread in step with the stored conversation history, which
        does not record failed turns.
        """
        removed = 0
        for message_id in message_ids:
            try:
                response = await client.delete(
                    f"{self.base_url}/threads/{thread_id}/messages/{message_id}"
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                log.warning(
                    "oracle_message_rollback_failed",
                    thread_id=thread_id,
                    message_id=message_id,
                    error=str(e),
                )
                continue
            removed += 1
        if message_ids:
            log.info(
                "oracle_messages_rolled_back",
                thread_id=thread_id,
                removed=removed,
                attempted=len(message_ids),
            )

    async def _wait_for_run(
        self, client: httpx.AsyncClient, thread_id: str, run: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Poll a run at a fixed interval until it leaves the pending states."""
        polls = 0
        while run.get("status") in PENDING_RUN_STATUSES:
            if polls >= self.max_polls:
                log.warning(
                    "oracle_run_timeout",
                    thread_id=thread_id,
                    run_id=run.get("id"),
                    status=run.get("status"),
                    polls=polls,
                )
                await self._cancel_run(client, thread_id, run["id"])
                raise OracleTimeoutError(
                    f"Oracle run did not finish within {self.max_wait}s",
                    thread_id=thread_id,
                    run_id=run.get("id"),
                )
            await asyncio.sleep(self.poll_interval)
            polls += 1
            run = await self._get(client, f"/threads/{thread_id}/runs/{run['id']}")

        status = run.get("status")
        if status in FAILED_RUN_STATUSES:
            last_error = run.get("last_error") or {}
            log.error(
                "oracle_run_failed",
                thread_id=thread_id,
                run_id=run.get("id"),
                status=status,
                error_code=last_error.get("code"),
            )
            raise OracleRunFailedError(
                f"Oracle run ended with status '{status}'",
                thread_id=thread_id,
                run_id=run.get("id"),
                status=status,
                last_error=last_error.get("message"),
            )
        if status != "completed":
            raise OracleRunFailedError(
                f"Oracle run ended with unexpected status '{status}'",
                thread_id=thread_id,
                run_id=run.get("id"),
                status=status,
            )
        return run

    @staticmethod
    def _assistant_text(listing: Dict[str, Any]) -> Optional[str]:
        """Text of the newest assistant message in a message listing."""
        for message in listing.get("data", []):
            if message.get("role") != "assistant":
                continue
            parts = [
                part.get("text", {}).get("value", "")
                for part in message.get("content", [])
                if part.get("type") == "text"
            ]
            if parts:
                return "".join(parts)
        return None

    async def invoke(self, stage: AgentType, context: OracleContext) -> OracleResponse:
        """
        Append messages to the session thread, run the stage assistant and
        return its reply.

        Raises:
            OracleUnavailableError: On transport errors or non-success HTTP status
            OracleTimeoutError: If the run stays pending past max_wait
            OracleRunFailedError: If the run ends failed/cancelled/expired
            OracleInvalidResponseError: If the run produced no assistant text
        """
        stage = AgentType(stage)
        assistant_id = self._assistant_id(stage)
        start = time.perf_counter()
        thread_id = context.thread_id
        posted: List[str] = []

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, headers=self._headers()
            ) as client:
                try:
                    if thread_id is None:
                        thread = await self._post(client, "/threads", {})
                        thread_id = thread["id"]
                        pending = context.messages
                        log.info("oracle_thread_created", thread_id=thread_id)
                    else:
                        pending = context.new_messages

                    for message in pending:
                        created = await self._post(
                            client,
                            f"/threads/{thread_id}/messages",
                            {"role": message["role"], "content": message["content"]},
                        )
                        if created.get("id"):
                            posted.append(created["id"])

                    run = await self._post(
                        client,
                        f"/threads/{thread_id}/runs",
                        {
                            "assistant_id": assistant_id,
                            "response_format": _response_format(
                                stage, self.response_format
                            ),
                        },
                    )
                    log.info(
                        "oracle_run_started",
                        stage=stage.value,
                        thread_id=thread_id,
                        run_id=run.get("id"),
                        appended_messages=len(pending),
                    )

                    run = await self._wait_for_run(client, thread_id, run)

                    listing = await self._get(
                        client,
                        f"/threads/{thread_id}/messages",
                        params={"order": "desc", "limit": 1, "run_id": run["id"]},
                    )
                    content = self._assistant_text(listing)
                    if content is None:
                        raise OracleInvalidResponseError(
                            "Oracle run completed without an assistant message",
                            stage=stage.value,
                            thread_id=thread_id,
                            run_id=run.get("id"),
                        )
                except (httpx.HTTPError, OracleError):
                    # Failed turns are not stored; the thread must not keep them either
                    await self._rollback_messages(client, thread_id, posted)
                    raise

        except httpx.TimeoutException as e:
            log.warning("oracle_request_timeout", stage=stage.value, timeout=self.timeout)
            raise OracleUnavailableError(
                f"Oracle request timed out after {self.timeout}s",
                stage=stage.value,
                thread_id=thread_id,
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            log.error("oracle_http_error", stage=stage.value, status_code=status_code)
            raise OracleUnavailableError(
                f"Oracle returned HTTP {status_code}",
                stage=stage.value,
                thread_id=thread_id,
                status_code=status_code,
            ) from e
        except httpx.HTTPError as e:
            log.error("oracle_transport_error", stage=stage.value, error=str(e))
            raise OracleUnavailableError(
                f"Oracle unreachable: {e}", stage=stage.value, thread_id=thread_id
            ) from e

        latency_ms = (time.perf_counter() - start) * 1000
        usage = _normalize_usage(run.get("usage"))

        log.info(
            "oracle_run_complete",
            stage=stage.value,
            thread_id=thread_id,
            run_id=run.get("id"),
            latency_ms=round(latency_ms, 2),
            total_tokens=usage["total_tokens"],
        )

        return OracleResponse(
            content=content,
            thread_id=thread_id,
            usage=usage,
            latency_ms=latency_ms,
            run_id=run.get("id"),
        )


# =============================================================================
# Chat Completions Client
# =============================================================================


class ChatCompletionsOracleClient(OracleClient):
    """Stateless chat-completions oracle.

    Sends the stage instructions as the system message followed by the whole
    conversation on every call.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        config: Optional[PipelineConfig] = None,
        timeout: Optional[float] = None,
        response_format: Optional[str] = None,
    ):
        self.api_key = api_key or settings.openai_api_key
        self.base_url = (base_url or settings.oracle_base_url).rstrip("/")
        self.config = config or pipeline_config
        self.timeout = timeout or settings.oracle_request_timeout
        self.response_format = response_format or settings.oracle_response_format

        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured. Set it in .env.")

        log.info("oracle_client_initialized", provider="chat")

    async def invoke(self, stage: AgentType, context: OracleContext) -> OracleResponse:
        stage = AgentType(stage)
        stage_config = self.config.for_stage(stage.value)
        thread_id = context.thread_id or f"local-{uuid.uuid4().hex}"

        messages: List[Dict[str, str]] = []
        if stage_config.instructions:
            messages.append({"role": "system", "content": stage_config.instructions})
        messages.extend(
            {"role": m["role"], "content": m["content"]} for m in context.messages
        )

        payload: Dict[str, Any] = {
            "model": stage_config.model,
            "temperature": stage_config.temperature,
            "messages": messages,
            "response_format": _response_format(stage, self.response_format),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            log.warning("oracle_request_timeout", stage=stage.value, timeout=self.timeout)
            raise OracleUnavailableError(
                f"Oracle request timed out after {self.timeout}s", stage=stage.value
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            log.error("oracle_http_error", stage=stage.value, status_code=status_code)
            raise OracleUnavailableError(
                f"Oracle returned HTTP {status_code}",
                stage=stage.value,
                status_code=status_code,
            ) from e
        except httpx.HTTPError as e:
            log.error("oracle_transport_error", stage=stage.value, error=str(e))
            raise OracleUnavailableError(
                f"Oracle unreachable: {e}", stage=stage.value
            ) from e

        choices = data.get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if not content:
            raise OracleInvalidResponseError(
                "Oracle returned no completion content", stage=stage.value
            )

        latency_ms = (time.perf_counter() - start) * 1000
        usage = _normalize_usage(data.get("usage"))
        log.info(
            "oracle_chat_complete",
            stage=stage.value,
            model=data.get("model", stage_config.model),
            latency_ms=round(latency_ms, 2),
            total_tokens=usage["total_tokens"],
        )

        return OracleResponse(
            content=content,
            thread_id=thread_id,
            usage=usage,
            latency_ms=latency_ms,
            run_id=data.get("id"),
        )


# =============================================================================
# Client Factory
# =============================================================================


def assistant_ids_from_config(config: PipelineConfig) -> Dict[str, Optional[str]]:
    """Assistant ids per stage; environment overrides win over YAML."""
    overrides = {
        "qualifier": settings.qualifier_assistant_id,
        "assessor": settings.assessor_assistant_id,
        "analyzer": settings.analyzer_assistant_id,
    }
    return {
        stage: overrides[stage] or config.for_stage(stage).assistant_id
        for stage in overrides
    }


def get_oracle_client() -> OracleClient:
    """
    Factory for the completion oracle selected by settings.oracle_provider.

    Returns:
        OracleClient instance

    Raises:
        ConfigurationError: If the provider's API key is missing
    """
    if settings.oracle_provider == "chat":
        return ChatCompletionsOracleClient()
    return AssistantsOracleClient()
