import json

import httpx
import pytest

from cortexmem.ai.llm import LLMService, JSON_SUFFIX, strip_fences
from cortexmem.ai.ollama import OllamaAdapter
from cortexmem.core.errors import LLMParseError, LLMUnavailable
from cortexmem.core.types import MergeDecision, MergeDecisionKind
from conftest import ScriptedAdapter, decision

async def parse(reply: str) -> MergeDecision:
    svc = LLMService(ScriptedAdapter([reply]), model="test-model")
    return await svc.complete_json("compare", "system", MergeDecision)

def test_strip_fences():
    assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_fences('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_fences('  {"a": 1}  ') == '{"a": 1}'

@pytest.mark.asyncio
async def test_camel_case_decision():
    d = await parse(decision("enrich", 0.85, "User prefers dark mode in every editor"))
    assert d.decision == MergeDecisionKind.enrich
    assert d.merged_content == "User prefers dark mode in every editor"
    assert d.new_confidence == pytest.approx(0.85)

@pytest.mark.asyncio
async def test_snake_case_and_fenced_decision():
    body = json.dumps({"decision": "strengthen", "reason": "same", "new_confidence": 1})
    d = await parse(f"```json\n{body}\n```")
    assert d.decision == MergeDecisionKind.strengthen
    assert d.merged_content is None
    assert d.new_confidence == 1.0

@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"decision": "merge", "reason": "x", "newConfidence": 0.5},
    {"decision": "duplicate", "newConfidence": 0.5},
    {"decision": "duplicate", "reason": "x", "newConfidence": 1.5},
    {"decision": "duplicate", "reason": "x", "newConfidence": -0.1},
    {"decision": "duplicate", "reason": "x", "newConfidence": "0.9"},
])
async def test_malformed_decisions_are_rejected(payload):
    with pytest.raises(LLMParseError) as ei:
        await parse(json.dumps(payload))
    assert ei.value.raw == json.dumps(payload)

@pytest.mark.asyncio
async def test_non_json_reply_is_rejected():
    with pytest.raises(LLMParseError):
        await parse("Sure! They look like duplicates to me.")

@pytest.mark.asyncio
async def test_transport_errors_become_unavailable():
    svc = LLMService(ScriptedAdapter(error=httpx.ConnectError("connection refused")), model="test-model")
    with pytest.raises(LLMUnavailable):
        await svc.complete("hello")

@pytest.mark.asyncio
async def test_non_json_http_body_becomes_unavailable(monkeypatch):
    async def html_post(self, url, **kwargs):
        return httpx.Response(200, text="<html>gateway</html>", request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", html_post)
    svc = LLMService(OllamaAdapter(base_url="http://ollama.test"), model="llama3")
    with pytest.raises(LLMUnavailable):
        await svc.complete("hello")

@pytest.mark.asyncio
async def test_json_instruction_is_appended_to_system_prompt():
    adapter = ScriptedAdapter([decision("separate")])
    svc = LLMService(adapter, model="test-model", temperature=0.0, max_tokens=50)
    await svc.complete_json("compare these", "You consolidate memories.", MergeDecision)

    msgs = adapter.calls[0]
    assert msgs[0] == {"role": "system", "content": "You consolidate memories." + JSON_SUFFIX}
    assert msgs[1] == {"role": "user", "content": "compare these"}

@pytest.mark.asyncio
async def test_plain_completion_has_no_system_message():
    adapter = ScriptedAdapter(["hi"])
    svc = LLMService(adapter, model="test-model")
    assert await svc.complete("hello") == "hi"
    assert adapter.calls[0] == [{"role": "user", "content": "hello"}]
