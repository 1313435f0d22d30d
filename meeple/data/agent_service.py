"""
Agent service client for The Meeple Agent.

Wraps the stateful assistant API (threads, messages and runs) behind a small
operation set so the pipeline never depends on a vendor SDK shape directly.
Supports both OpenAI and Azure OpenAI endpoints.

Environment Variables:
    OPENAI_API_KEY: Your OpenAI (or Azure OpenAI) API key
    AZURE_OPENAI_ENDPOINT: Azure resource endpoint (switches to AzureOpenAI)
    AGENT_ASSISTANT_ID: Assistant that answers board game questions
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from openai import AzureOpenAI, NotFoundError, OpenAI, OpenAIError

from meeple.config import config

logger = logging.getLogger(__name__)


class AgentServiceError(RuntimeError):
    """Raised when the agent service cannot be reached or rejects a call."""


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunStatus.QUEUED, RunStatus.IN_PROGRESS, RunStatus.CANCELLING)

    @classmethod
    def parse(cls, value: str) -> "RunStatus":
        try:
            return cls(str(value).lower())
        except ValueError:
            # Unknown statuses are treated as finished so polling stops
            return cls.FAILED


@dataclass(frozen=True)
class ThreadMessage:
    """A message read back from a thread, reduced to its text content."""
    role: str
    text: Optional[str]


class AgentService(ABC):
    """Operation set the pipeline needs from a stateful conversational agent."""

    @abstractmethod
    def create_thread(self) -> str:
        """Create a new thread and return its id."""

    @abstractmethod
    def get_thread(self, thread_id: str) -> Optional[str]:
        """Return the thread id if the thread still exists, else None."""

    @abstractmethod
    def create_message(self, thread_id: str, role: str, text: str) -> None:
        """Append a message to a thread."""

    @abstractmethod
    def create_run(self, thread_id: str, agent_id: str) -> str:
        """Start a run of the given agent on a thread and return the run id."""

    @abstractmethod
    def get_run(self, thread_id: str, run_id: str) -> RunStatus:
        """Return the current status of a run."""

    @abstractmethod
    def cancel_run(self, thread_id: str, run_id: str) -> None:
        """Ask the service to stop a run that is still active."""

    @abstractmethod
    def list_messages(self, thread_id: str, order: str = "desc", limit: int = 1) -> List[ThreadMessage]:
        """List thread messages in the given order."""


class OpenAIAgentService(AgentService):
    """
    Agent service backed by the OpenAI Assistants API.

    Usage:
        service = OpenAIAgentService()
        thread_id = service.create_thread()
        service.create_message(thread_id, "user", "Suggest a 2 player game")
        run_id = service.create_run(thread_id, config.openai.assistant_id)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        azure_endpoint: Optional[str] = None,
        client=None,
    ):
        """
        Initialize the agent service.

        Args:
            api_key: API key (defaults to config/env)
            azure_endpoint: Azure OpenAI endpoint (defaults to config/env)
            client: Pre-built OpenAI client, mainly for tests
        """
        self.api_key = api_key or config.openai.api_key
        self.azure_endpoint = azure_endpoint or config.openai.azure_endpoint
        self.is_azure = self.azure_endpoint is not None

        if not self.api_key and client is None:
            logger.warning("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")

        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self):
        """Get the appropriate sync client (Azure or OpenAI)."""
        if self.is_azure:
            return AzureOpenAI(
                api_key=self.api_key,
                azure_endpoint=self.azure_endpoint,
                api_version=config.openai.azure_api_version,
            )
        return OpenAI(
            api_key=self.api_key,
            base_url=config.openai.api_endpoint,
        )

    def create_thread(self) -> str:
        try:
            thread = self.client.beta.threads.create()
        except OpenAIError as e:
            raise AgentServiceError(f"Failed to create thread: {e}") from e
        logger.debug(f"Created thread {thread.id}")
        return thread.id

    def get_thread(self, thread_id: str) -> Optional[str]:
        try:
            return self.client.beta.threads.retrieve(thread_id).id
        except NotFoundError:
            return None
        except OpenAIError as e:
            raise AgentServiceError(f"Failed to get thread {thread_id}: {e}") from e

    def create_message(self, thread_id: str, role: str, text: str) -> None:
        try:
            self.client.beta.threads.messages.create(
                thread_id=thread_id,
                role=role,
                content=text,
            )
        except OpenAIError as e:
            raise AgentServiceError(f"Failed to post message to {thread_id}: {e}") from e

    def create_run(self, thread_id: str, agent_id: str) -> str:
        try:
            run = self.client.beta.threads.runs.create(
                thread_id=thread_id,
                assistant_id=agent_id,
            )
        except OpenAIError as e:
            raise AgentServiceError(f"Failed to start run on {thread_id}: {e}") from e
        return run.id

    def get_run(self, thread_id: str, run_id: str) -> RunStatus:
        try:
            run = self.client.beta.threads.runs.retrieve(run_id, thread_id=thread_id)
        except OpenAIError as e:
            raise AgentServiceError(f"Failed to get run {run_id}: {e}") from e
        return RunStatus.parse(run.status)

    def cancel_run(self, thread_id: str, run_id: str) -> None:
        try:
            self.client.beta.threads.runs.cancel(run_id, thread_id=thread_id)
        except OpenAIError as e:
            raise AgentServiceError(f"Failed to cancel run {run_id}: {e}") from e

    def list_messages(self, thread_id: str, order: str = "desc", limit: int = 1) -> List[ThreadMessage]:
        try:
            page = self.client.beta.threads.messages.list(
                thread_id=thread_id,
                order=order,
                limit=limit,
            )
        except OpenAIError as e:
            raise AgentServiceError(f"Failed to list messages on {thread_id}: {e}") from e

        messages = []
        for message in page.data:
            parts = [
                block.text.value
                for block in message.content
                if getattr(block, "type", None) == "text"
            ]
            messages.append(ThreadMessage(
                role=message.role,
                text="\n".join(parts) if parts else None,
            ))
        return messages
