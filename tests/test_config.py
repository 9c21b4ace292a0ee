"""
chatrelay - Configuration and Catalog Tests
"""

import pytest

from chatrelay.core.catalog import (
    FALLBACK_MODEL_ID,
    get_fallback_model,
    get_model,
    list_models,
)
from chatrelay.core.config import (
    DEFAULT_API_HOST,
    DEFAULT_MAX_TOKENS,
    ProviderType,
    RelayConfig,
)
from chatrelay.core.errors import ConfigError
from chatrelay.core.models import ChatMessage, CompletionRequest, ModelSpec, Role


class TestRelayConfig:
    """Environment parsing and validation."""

    def test_defaults(self):
        config = RelayConfig.from_env({})

        assert config.api_type == ProviderType.OPENAI
        assert config.api_host == DEFAULT_API_HOST
        assert config.max_tokens == DEFAULT_MAX_TOKENS
        assert config.timeout is None
        assert config.completions_url == "https://api.openai.com/v1/chat/completions"

    def test_azure_from_env(self):
        config = RelayConfig.from_env({
            "OPENAI_API_TYPE": "Azure",
            "OPENAI_API_HOST": "https://chatty.openai.azure.com/",
            "OPENAI_API_VERSION": "2023-07-01-preview",
            "OPENAI_AZURE_DEPLOYMENT_ID": "gpt35",
            "OPENAI_API_KEY": "azure-key",
            "OPENAI_API_MAX_TOKENS": "2000",
            "OPENAI_API_TIMEOUT": "30",
        })

        assert config.api_type == ProviderType.AZURE
        assert config.completions_url == (
            "https://chatty.openai.azure.com/openai/deployments/gpt35/chat/completions"
            "?api-version=2023-07-01-preview"
        )
        assert config.max_tokens == 2000
        assert config.timeout == 30.0

    def test_unknown_provider_type(self):
        with pytest.raises(ConfigError, match="OPENAI_API_TYPE"):
            RelayConfig.from_env({"OPENAI_API_TYPE": "anthropic"})

    @pytest.mark.parametrize("value", ["0", "-5", "many"])
    def test_invalid_max_tokens(self, value):
        with pytest.raises(ConfigError, match="OPENAI_API_MAX_TOKENS"):
            RelayConfig.from_env({"OPENAI_API_MAX_TOKENS": value})

    def test_invalid_timeout(self):
        with pytest.raises(ConfigError, match="OPENAI_API_TIMEOUT"):
            RelayConfig.from_env({"OPENAI_API_TIMEOUT": "soon"})

    def test_azure_requires_deployment(self):
        with pytest.raises(ConfigError, match="OPENAI_AZURE_DEPLOYMENT_ID"):
            RelayConfig.from_env({"OPENAI_API_TYPE": "azure"})

    def test_caller_key_wins(self):
        config = RelayConfig(default_api_key="server")

        assert config.resolve_api_key("caller") == "caller"
        assert config.resolve_api_key("") == "server"

    def test_config_is_immutable(self):
        config = RelayConfig()
        with pytest.raises(AttributeError):
            config.api_host = "https://elsewhere.test"


class TestCatalog:

    def test_enabled_models(self):
        models = list_models()
        assert [m.id for m in models] == ["gpt-35-turbo", "gpt-35-turbo-16k", "gpt-4", "gpt-4-32k"]
        assert models[2].to_dict() == {"id": "gpt-4", "name": "GPT-4", "tokenLimit": 8000}

    def test_duplicates_and_unknown_ids_dropped(self):
        models = list_models(["gpt-4", "gpt-4", "gpt-5", "gpt-35-turbo"])
        assert [m.id for m in models] == ["gpt-4", "gpt-35-turbo"]

    def test_lookup(self):
        assert get_model("gpt-4-32k").token_limit == 32000
        assert get_model("unknown") is None
        assert get_fallback_model().id == FALLBACK_MODEL_ID


class TestCompletionRequest:

    def test_upstream_messages_start_with_system_prompt(self):
        request = CompletionRequest.build(
            model=get_fallback_model(),
            system_prompt="Be brief.",
            temperature=1.0,
            messages=[ChatMessage(Role.USER, "Hi")],
        )
        assert request.upstream_messages() == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]

    def test_messages_are_snapshotted(self):
        messages = [ChatMessage(Role.USER, "Hi")]
        request = CompletionRequest.build(get_fallback_model(), "", 1.0, messages)

        messages[0].content = "edited"
        messages.append(ChatMessage(Role.USER, "more"))

        assert [m.content for m in request.messages] == ["Hi"]

    @pytest.mark.parametrize("temperature", [-0.1, 2.1])
    def test_temperature_range(self, temperature):
        with pytest.raises(ValueError):
            CompletionRequest.build(get_fallback_model(), "", temperature, [])

    def test_model_spec_validation(self):
        with pytest.raises(ValueError):
            ModelSpec(id="gpt-4", token_limit=0)
        with pytest.raises(ValueError):
            ModelSpec(id="", token_limit=10)
