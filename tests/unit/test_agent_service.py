"""Tests for the OpenAI-backed agent service and the in-memory fake."""

from types import SimpleNamespace

import httpx
import pytest
from openai import NotFoundError, OpenAIError

from meeple.data.agent_service import AgentServiceError, OpenAIAgentService, RunStatus
from meeple.data.fake_agent import DEFAULT_RESPONSE, FakeAgentService, extract_keywords


def text_block(value):
    return SimpleNamespace(type="text", text=SimpleNamespace(value=value))


class StubThreads:
    """Mimics the client.beta.threads surface used by the service."""

    def __init__(self):
        self.created_messages = []
        self.retrieve_error = None
        self.create_error = None
        self.run_status = "completed"
        self.cancelled = []
        self.listed = []
        self.messages = SimpleNamespace(create=self._create_message, list=self._list_messages)
        self.runs = SimpleNamespace(
            create=self._create_run, retrieve=self._retrieve_run, cancel=self._cancel_run
        )

    def create(self):
        if self.create_error:
            raise self.create_error
        return SimpleNamespace(id="thread_1")

    def retrieve(self, thread_id):
        if self.retrieve_error:
            raise self.retrieve_error
        return SimpleNamespace(id=thread_id)

    def _create_message(self, thread_id, role, content):
        self.created_messages.append((thread_id, role, content))

    def _create_run(self, thread_id, assistant_id):
        return SimpleNamespace(id="run_1")

    def _retrieve_run(self, run_id, thread_id):
        return SimpleNamespace(id=run_id, status=self.run_status)

    def _cancel_run(self, run_id, thread_id):
        if self.run_status == "completed":
            raise OpenAIError("run already completed")
        self.cancelled.append((thread_id, run_id))

    def _list_messages(self, thread_id, order, limit):
        return SimpleNamespace(data=self.listed[:limit])


@pytest.fixture
def threads():
    return StubThreads()


@pytest.fixture
def service(threads):
    client = SimpleNamespace(beta=SimpleNamespace(threads=threads))
    return OpenAIAgentService(api_key="sk-test", client=client)


def not_found():
    request = httpx.Request("GET", "https://api.test/v1/threads/thread_gone")
    return NotFoundError("not found", response=httpx.Response(404, request=request), body=None)


class TestOpenAIAgentService:

    def test_thread_and_run_lifecycle(self, service, threads):
        thread_id = service.create_thread()
        service.create_message(thread_id, "user", '[{"role": "user", "content": "hi"}]')
        run_id = service.create_run(thread_id, "asst_1")

        assert thread_id == "thread_1"
        assert run_id == "run_1"
        assert threads.created_messages == [("thread_1", "user", '[{"role": "user", "content": "hi"}]')]
        assert service.get_run(thread_id, run_id) is RunStatus.COMPLETED

    def test_cancel_run(self, service, threads):
        threads.run_status = "in_progress"
        service.cancel_run("thread_1", "run_1")
        assert threads.cancelled == [("thread_1", "run_1")]

        threads.run_status = "completed"
        with pytest.raises(AgentServiceError):
            service.cancel_run("thread_1", "run_1")

    def test_missing_thread(self, service, threads):
        assert service.get_thread("thread_1") == "thread_1"
        threads.retrieve_error = not_found()
        assert service.get_thread("thread_gone") is None

    def test_errors_are_wrapped(self, service, threads):
        threads.create_error = OpenAIError("connection reset")
        with pytest.raises(AgentServiceError):
            service.create_thread()

    def test_list_messages_keeps_text_blocks(self, service, threads):
        threads.listed = [
            SimpleNamespace(role="assistant", content=[
                text_block("Try Azul."),
                SimpleNamespace(type="image_file"),
                text_block("Or Patchwork for two."),
            ]),
            SimpleNamespace(role="user", content=[text_block("older")]),
        ]

        messages = service.list_messages("thread_1", order="desc", limit=1)

        assert len(messages) == 1
        assert messages[0].role == "assistant"
        assert messages[0].text == "Try Azul.\nOr Patchwork for two."

    def test_message_without_text(self, service, threads):
        threads.listed = [SimpleNamespace(role="assistant", content=[SimpleNamespace(type="image_file")])]
        assert service.list_messages("thread_1")[0].text is None


class TestRunStatus:

    @pytest.mark.parametrize("value, terminal", [
        ("queued", False),
        ("in_progress", False),
        ("cancelling", False),
        ("completed", True),
        ("failed", True),
        ("expired", True),
        ("requires_action", True),
    ])
    def test_terminal(self, value, terminal):
        assert RunStatus.parse(value).is_terminal is terminal

    def test_unknown_status_stops_polling(self):
        assert RunStatus.parse("something_new") is RunStatus.FAILED


class TestFakeAgentService:

    def test_extract_keywords(self):
        assert extract_keywords("Tell me about Catan") == {"name": "Catan"}
        assert extract_keywords("games for 2 to 4 players") == {"minPlayers": 2, "maxPlayers": 4}
        assert extract_keywords("fun game") == {}

    def test_unknown_question_gets_default(self):
        service = FakeAgentService()
        thread_id = service.create_thread()
        service.create_message(thread_id, "user", '[{"role": "user", "content": "What is a meeple?"}]')
        run_id = service.create_run(thread_id, "asst_fake")

        assert service.get_run(thread_id, run_id) is RunStatus.COMPLETED
        assert service.list_messages(thread_id)[0].text == DEFAULT_RESPONSE

    def test_plain_text_turn(self):
        service = FakeAgentService()
        thread_id = service.create_thread()
        service.create_message(thread_id, "user", "Tell me about Catan")
        service.get_run(thread_id, service.create_run(thread_id, "asst_fake"))

        assert service.list_messages(thread_id)[0].text.startswith("Catan:")

    def test_active_run_blocks_new_messages(self):
        service = FakeAgentService(polls_before_complete=5)
        thread_id = service.create_thread()
        service.create_message(thread_id, "user", '[{"role": "user", "content": "fun game"}]')
        run_id = service.create_run(thread_id, "asst_fake")

        assert service.get_run(thread_id, run_id) is RunStatus.IN_PROGRESS
        with pytest.raises(AgentServiceError):
            service.create_message(thread_id, "user", "anyone there?")

        service.cancel_run(thread_id, run_id)

        assert service.get_run(thread_id, run_id) is RunStatus.CANCELLED
        service.create_message(thread_id, "user", "anyone there?")
        assert service.list_messages(thread_id)[0].text == "anyone there?"
