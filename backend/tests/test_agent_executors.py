"""
Tests for model-backed and autonomous agent node executors.
"""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import make_node
from workflow_engine.executors import execute_node
from workflow_engine.executors.agent_executors import validate_against_schema
from workflow_engine.services import ExecutionServices


@pytest.fixture
def model_client():
    client = Mock()
    client.chat = AsyncMock(return_value="ok")
    return client


@pytest.fixture
def model_services(model_client):
    return ExecutionServices(model_client=model_client)


class TestAgentAutonomousExecutor:

    async def test_placeholder_deploy(self, context):
        node = make_node("agent_autonomous", {"agentId": "a1", "task": "Do something"})
        result = await execute_node(node, {}, context)
        assert result.success is True
        assert result.output == {"status": "deployed", "agentId": "a1", "task": "Do something"}

    async def test_uses_deployer_when_configured(self, context):
        deployer = Mock()
        deployer.deploy = Mock(return_value="agent-42")
        node = make_node("agent_autonomous", {"agentId": "a1", "task": "Triage inbox"})

        result = await execute_node(node, {}, context, ExecutionServices(agent_deployer=deployer))

        assert result.output["agentId"] == "agent-42"
        deployer.deploy.assert_called_once()
        assert deployer.deploy.call_args.args[0]["task"] == "Triage inbox"

    async def test_deployer_returning_nothing_fails(self, context):
        deployer = Mock()
        deployer.deploy = Mock(return_value=None)
        node = make_node("agent_autonomous", {"task": "x"})
        result = await execute_node(node, {}, context, ExecutionServices(agent_deployer=deployer))
        assert result.success is False
        assert "Failed to deploy agent" in result.error


class TestAgentThinkExecutor:

    async def test_sends_prompt_with_input(self, context, model_services, model_client):
        model_client.chat.return_value = "The invoice is overdue."
        node = make_node("agent_think", {"prompt": "Summarize", "systemPrompt": "Be brief", "maxTokens": 200})

        result = await execute_node(node, {"invoice": 17}, context, model_services)

        assert result.success is True
        assert result.output == "The invoice is overdue."
        messages = model_client.chat.call_args.args[0]
        assert messages[0]["content"].startswith("Summarize\n\nInput data:\n")
        assert '"invoice": 17' in messages[0]["content"]
        assert model_client.chat.call_args.kwargs == {"system_prompt": "Be brief", "max_tokens": 200}

    async def test_without_model_client(self, context):
        result = await execute_node(make_node("agent_think", {"prompt": "x"}), {}, context)
        assert result.success is False
        assert "No model client configured" in result.error

    async def test_model_error_propagates_as_result(self, context, model_services, model_client):
        model_client.chat.side_effect = RuntimeError("model unavailable")
        result = await execute_node(make_node("agent_think", {"prompt": "x"}), {}, context, model_services)
        assert result.success is False
        assert result.error == "model unavailable"


class TestAgentClassifyExecutor:

    async def test_classifies_input_field(self, context, model_services, model_client):
        model_client.chat.return_value = "  billing \n"
        node = make_node("agent_classify", {"categories": "billing, support, sales", "inputField": "body"})

        result = await execute_node(node, {"body": "My card was charged twice"}, context, model_services)

        assert result.output == {"category": "billing", "input": "My card was charged twice"}
        prompt = model_client.chat.call_args.args[0][0]["content"]
        assert "billing, support, sales" in prompt


class TestAgentExtractExecutor:

    SCHEMA = {
        "required": ["name", "amount"],
        "properties": {"name": {"type": "string"}, "amount": {"type": "number"}},
    }

    async def test_valid_first_response(self, context, model_services, model_client):
        model_client.chat.return_value = json.dumps({"name": "ACME", "amount": 120.5})
        node = make_node("agent_extract", {"schema": self.SCHEMA})

        result = await execute_node(node, {"text": "ACME owes 120.50"}, context, model_services)

        assert result.success is True
        assert result.output == {"name": "ACME", "amount": 120.5}
        assert model_client.chat.await_count == 1

    async def test_retries_once_with_feedback(self, context, model_services, model_client):
        model_client.chat.side_effect = [
            json.dumps({"name": "ACME"}),
            json.dumps({"name": "ACME", "amount": 3}),
        ]
        node = make_node("agent_extract", {"schema": self.SCHEMA})

        result = await execute_node(node, {}, context, model_services)

        assert result.success is True
        retry_prompt = model_client.chat.call_args_list[1].args[0][0]["content"]
        assert "Missing required field: amount" in retry_prompt

    async def test_fails_after_second_invalid_response(self, context, model_services, model_client):
        model_client.chat.side_effect = ["not json", json.dumps({"name": 5, "amount": 1})]
        node = make_node("agent_extract", {"schema": self.SCHEMA})

        result = await execute_node(node, {}, context, model_services)

        assert result.success is False
        assert result.error.startswith("Schema validation failed:")
        assert 'Field "name" expected type "string"' in result.error


class TestValidateAgainstSchema:

    def test_no_schema(self):
        assert validate_against_schema("anything", None) is None

    def test_non_object(self):
        assert validate_against_schema([1], {"required": []}) == "Expected an object but got list"

    def test_integer_and_boolean_types(self):
        schema = {"properties": {"n": {"type": "integer"}, "flag": {"type": "boolean"}}}
        assert validate_against_schema({"n": 3, "flag": False}, schema) is None
        assert validate_against_schema({"n": True}, schema) is not None
