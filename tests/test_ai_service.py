"""Tests for the AI dispatch facade (mocked HTTP)."""

from unittest.mock import patch

import httpx
import pytest

from ideabox.core.ai_providers import (
    GenerationRequest,
    NoActiveKey,
    ProviderError,
    TransportError,
    UnsupportedService,
)
from ideabox.core.ai_service import AIService, SUMMARY_SYSTEM_PROMPT
from ideabox.core.credentials import KeyNotFound
from ideabox.core.usage import SqlUsageRecorder
from ideabox.models import UsageLog

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "perplexity": "llama-3.1-sonar-small-128k-online",
    "anthropic": "claude-3-opus-20240229",
    "google": "gemini-1.5-pro",
}


@pytest.fixture
def events():
    return []


@pytest.fixture
def service(memory_store, events):
    return AIService(
        memory_store,
        recorder=events.append,
        timeout=5.0,
        default_models=DEFAULT_MODELS,
        fallback_keys={},
    )


class TestFailuresBeforeHTTP:
    def test_no_active_key(self, service, mock_http, events):
        with pytest.raises(NoActiveKey, match="No active API key found for openai"):
            service.generate(GenerationRequest(service="openai", prompt="hi"))
        mock_http.post.assert_not_called()
        assert events[0].successful is False
        assert events[0].api_key_id is None

    def test_only_inactive_key_behaves_like_no_key(self, service, memory_store, mock_http):
        record = memory_store.create("Primary", "openai", "sk-one")
        memory_store.create("Backup", "openai", "sk-two")
        memory_store.delete(record.id)
        with pytest.raises(NoActiveKey):
            service.generate(GenerationRequest(service="openai", prompt="hi"))
        mock_http.post.assert_not_called()

    def test_custom_service_unsupported(self, service, memory_store, mock_http, events):
        memory_store.create("Reserved", "custom", "whatever")
        with pytest.raises(UnsupportedService, match="Unsupported service: custom"):
            service.generate(GenerationRequest(service="custom", prompt="hi"))
        mock_http.post.assert_not_called()
        assert events[0].service == "custom"
        assert events[0].error == "Unsupported service: custom"

    def test_unknown_service_unsupported(self, service, mock_http):
        with pytest.raises(UnsupportedService):
            service.generate(GenerationRequest(service="mistral", prompt="hi"))
        mock_http.post.assert_not_called()


class TestNormalization:
    def test_openai(self, service, memory_store, respond, mock_http):
        memory_store.create("Primary", "openai", "sk-openai")
        raw = {"choices": [{"message": {"content": "hello"}}], "model": "gpt-4o", "usage": {"total_tokens": 5}}
        respond(200, raw)

        result = service.generate(GenerationRequest(service="openai", prompt="hi"))

        assert result.to_dict() == {"content": "hello", "model": "gpt-4o", "usage": {"total_tokens": 5}, "raw": raw}
        url = mock_http.post.call_args.args[0]
        kwargs = mock_http.post.call_args.kwargs
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-openai"
        assert kwargs["json"]["model"] == "gpt-4o"

    def test_perplexity(self, service, memory_store, respond, mock_http):
        memory_store.create("Primary", "perplexity", "pplx-key")
        respond(200, {
            "choices": [{"message": {"content": "Sonar answer"}}],
            "model": "llama-3.1-sonar-small-128k-online",
            "usage": {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7},
        })

        result = service.generate(GenerationRequest(service="perplexity", prompt="news?"))

        assert result.content == "Sonar answer"
        assert result.usage["total_tokens"] == 7
        assert mock_http.post.call_args.args[0] == "https://api.perplexity.ai/chat/completions"

    def test_anthropic(self, service, memory_store, respond, mock_http):
        memory_store.create("Primary", "anthropic", "sk-ant")
        respond(200, {
            "content": [{"type": "text", "text": "Claude here"}],
            "model": "claude-3-opus-20240229",
            "usage": {"input_tokens": 10, "output_tokens": 5},
        })

        result = service.generate(GenerationRequest(service="anthropic", prompt="hi"))

        assert result.content == "Claude here"
        assert result.usage == {"input_tokens": 10, "output_tokens": 5}
        kwargs = mock_http.post.call_args.kwargs
        assert kwargs["headers"]["x-api-key"] == "sk-ant"
        assert kwargs["json"]["max_tokens"] == 1000

    def test_google(self, service, memory_store, respond, mock_http):
        memory_store.create("Primary", "google", "AIza-key")
        respond(200, {
            "candidates": [{"content": {"parts": [{"text": "Gemini here"}]}}],
            "usageMetadata": {"totalTokenCount": 9},
        })

        result = service.generate(GenerationRequest(service="google", prompt="hi", model="gemini-1.5-flash"))

        assert result.content == "Gemini here"
        assert result.model == "gemini-1.5-flash"
        assert result.usage == {"totalTokenCount": 9}
        url = mock_http.post.call_args.args[0]
        kwargs = mock_http.post.call_args.kwargs
        assert url.endswith("/models/gemini-1.5-flash:generateContent")
        assert kwargs["params"] == {"key": "AIza-key"}
        assert "Authorization" not in kwargs["headers"]

    def test_explicit_timeout(self, service, memory_store):
        memory_store.create("Primary", "openai", "sk-openai")
        with patch("ideabox.core.ai_service.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.post.return_value.status_code = 200
            client.post.return_value.json.return_value = {"choices": [{"message": {"content": "ok"}}]}
            service.generate(GenerationRequest(service="openai", prompt="hi"))
        client_cls.assert_called_once_with(timeout=5.0)


class TestProviderFailures:
    def test_anthropic_401(self, service, memory_store, respond):
        memory_store.create("Primary", "anthropic", "sk-bad")
        respond(401, {"type": "error", "error": {"type": "authentication_error", "message": "invalid api key"}})

        with pytest.raises(ProviderError) as exc:
            service.generate(GenerationRequest(service="anthropic", prompt="hi"))
        assert str(exc.value) == "invalid api key"

    def test_non_json_error_body(self, service, memory_store, respond):
        memory_store.create("Primary", "openai", "sk-one")
        respond(502, ValueError("not json"))

        with pytest.raises(ProviderError) as exc:
            service.generate(GenerationRequest(service="openai", prompt="hi"))
        assert str(exc.value) == "OpenAI API error"

    def test_transport_error(self, service, memory_store, mock_http, events):
        memory_store.create("Primary", "google", "AIza-key")
        mock_http.post.side_effect = httpx.ConnectTimeout("timed out")

        with pytest.raises(TransportError, match="timed out"):
            service.generate(GenerationRequest(service="google", prompt="hi"))
        assert events[0].successful is False

    def test_failure_does_not_touch_last_used(self, service, memory_store, respond):
        record = memory_store.create("Primary", "openai", "sk-one")
        respond(500, {"error": {"message": "server error"}})
        with pytest.raises(ProviderError):
            service.generate(GenerationRequest(service="openai", prompt="hi"))
        assert memory_store.get(record.id).last_used_at is None


class TestSideEffects:
    def test_success_touches_last_used(self, service, memory_store, respond):
        record = memory_store.create("Primary", "openai", "sk-one")
        respond(200, {"choices": [{"message": {"content": "ok"}}], "usage": {"total_tokens": 3}})

        service.generate(GenerationRequest(service="openai", prompt="hi"))

        assert memory_store.get(record.id).last_used_at is not None

    def test_touch_failure_does_not_fail_dispatch(self, service, memory_store, respond):
        memory_store.create("Primary", "openai", "sk-one")
        respond(200, {"choices": [{"message": {"content": "ok"}}]})
        with patch.object(memory_store.repository, "touch_last_used", side_effect=RuntimeError("db down")):
            result = service.generate(GenerationRequest(service="openai", prompt="hi"))
        assert result.content == "ok"

    def test_usage_event_on_success(self, service, memory_store, respond, events):
        record = memory_store.create("Primary", "anthropic", "sk-ant")
        respond(200, {
            "content": [{"text": "ok"}],
            "model": "claude-3-opus-20240229",
            "usage": {"input_tokens": 4, "output_tokens": 6},
        })

        service.generate(
            GenerationRequest(service="anthropic", prompt="hi"),
            operation="extract-metadata",
            user_id="user-1",
        )

        assert len(events) == 1
        event = events[0]
        assert event.operation == "extract-metadata"
        assert event.service == "anthropic"
        assert event.model == "claude-3-opus-20240229"
        assert event.tokens_used == 10
        assert event.successful is True
        assert event.error is None
        assert event.api_key_id == record.id
        assert event.user_id == "user-1"

    def test_recorder_failure_is_logged(self, memory_store, respond, caplog):
        def broken_recorder(event):
            raise RuntimeError("log table missing")

        service = AIService(memory_store, recorder=broken_recorder, default_models=DEFAULT_MODELS, fallback_keys={})
        memory_store.create("Primary", "openai", "sk-one")
        respond(200, {"choices": [{"message": {"content": "ok"}}]})

        assert service.generate(GenerationRequest(service="openai", prompt="hi")).content == "ok"
        assert "Failed to record AI usage" in caplog.text

    def test_sql_recorder_persists_rows(self, memory_store, respond, test_db):
        service = AIService(
            memory_store,
            recorder=SqlUsageRecorder(test_db),
            default_models=DEFAULT_MODELS,
            fallback_keys={},
        )
        with pytest.raises(NoActiveKey):
            service.generate(GenerationRequest(service="openai", prompt="hi"))

        rows = test_db.query(UsageLog).all()
        assert len(rows) == 1
        assert rows[0].successful is False
        assert rows[0].model == "gpt-4o"
        assert "No active API key" in rows[0].error


class TestFallbackKeys:
    def test_env_fallback_used_without_stored_key(self, memory_store, respond, mock_http, events):
        service = AIService(
            memory_store,
            recorder=events.append,
            default_models=DEFAULT_MODELS,
            fallback_keys={"openai": "sk-env"},
        )
        respond(200, {"choices": [{"message": {"content": "ok"}}]})

        service.generate(GenerationRequest(service="openai", prompt="hi"))

        assert mock_http.post.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-env"
        assert events[0].api_key_id is None

    def test_stored_key_preferred(self, memory_store, respond, mock_http):
        service = AIService(memory_store, default_models=DEFAULT_MODELS, fallback_keys={"openai": "sk-env"})
        memory_store.create("Primary", "openai", "sk-stored")
        respond(200, {"choices": [{"message": {"content": "ok"}}]})

        service.generate(GenerationRequest(service="openai", prompt="hi"))

        assert mock_http.post.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-stored"


class TestSummarize:
    def test_summarize(self, service, memory_store, respond, mock_http, events):
        memory_store.create("Primary", "openai", "sk-one")
        respond(200, {"choices": [{"message": {"content": "  A short summary.  "}}], "model": "gpt-4o-mini"})

        summary = service.summarize("A very long article ...")

        assert summary == "A short summary."
        body = mock_http.post.call_args.kwargs["json"]
        assert body["model"] == "gpt-4o-mini"
        assert body["temperature"] == 0.5
        assert body["max_tokens"] == 100
        assert body["messages"][0]["content"] == SUMMARY_SYSTEM_PROMPT
        assert events[0].operation == "summarize"


class TestUnusablePayloads:
    def test_null_content_is_provider_error(self, service, memory_store, respond, events):
        record = memory_store.create("Primary", "openai", "sk-one")
        respond(200, {"choices": [{"message": {"content": None}}], "model": "gpt-4o"})

        with pytest.raises(ProviderError, match="OpenAI API error: unexpected response shape"):
            service.generate(GenerationRequest(service="openai", prompt="hi"))

        assert events[0].successful is False
        assert memory_store.get(record.id).last_used_at is None

    def test_non_dict_usage_still_succeeds(self, service, memory_store, respond, events):
        record = memory_store.create("Primary", "google", "AIza-key")
        respond(200, {
            "candidates": [{"content": {"parts": [{"text": "ok"}]}}],
            "usageMetadata": "unavailable",
        })

        result = service.generate(GenerationRequest(service="google", prompt="hi"))

        assert result.content == "ok"
        assert result.usage is None
        assert events[0].successful is True
        assert events[0].tokens_used is None
        assert memory_store.get(record.id).last_used_at is not None


class TestConnectionCheck:
    def test_key_accepted_and_model_listed(self, service, memory_store, respond, mock_http, events):
        record = memory_store.create("Primary", "openai", "sk-one")
        respond(200, {"data": [{"id": "gpt-4o"}, {"id": "gpt-4o-mini"}]}, method="get")

        result = service.test_connection(record.id)

        assert result.success is True
        assert result.model_available is True
        assert mock_http.get.call_args.args[0] == "https://api.openai.com/v1/models"
        assert mock_http.get.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-one"
        mock_http.post.assert_not_called()
        assert events == []
        assert memory_store.get(record.id).last_used_at is None

    def test_inactive_key_can_be_checked(self, service, memory_store, respond, mock_http):
        memory_store.create("Primary", "google", "AIza-one")
        backup = memory_store.create("Backup", "google", "AIza-two")
        respond(200, {"models": [{"name": "models/gemini-1.5-flash"}]}, method="get")

        result = service.test_connection(backup.id, model="gemini-1.5-pro")

        assert result.success is True
        assert result.model_available is False
        assert mock_http.get.call_args.kwargs["params"] == {"key": "AIza-two"}

    def test_rejected_key(self, service, memory_store, respond):
        record = memory_store.create("Primary", "anthropic", "sk-ant-bad")
        respond(401, {"type": "error", "error": {"message": "invalid x-api-key"}}, method="get")

        result = service.test_connection(record.id)

        assert result.success is False
        assert result.error == "invalid x-api-key"

    def test_transport_failure(self, service, memory_store, mock_http):
        record = memory_store.create("Primary", "perplexity", "pplx-key")
        mock_http.get.side_effect = httpx.ConnectError("connection refused")

        result = service.test_connection(record.id)

        assert result.success is False
        assert "connection refused" in result.error

    def test_custom_key_unsupported(self, service, memory_store, mock_http):
        record = memory_store.create("Reserved", "custom", "whatever")

        result = service.test_connection(record.id)

        assert result.success is False
        assert result.error == "Unsupported service: custom"
        mock_http.get.assert_not_called()

    def test_unknown_key(self, service):
        with pytest.raises(KeyNotFound):
            service.test_connection("missing")
