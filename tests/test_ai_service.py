import pytest
from pydantic import BaseModel

from app.core.config import settings
from app.services.ai_service import AIProvider, AIProviderError, AIService
from app.services.completion import CompletionError, CompletionPort, coerce_structured, strip_code_fences


class Verdict(BaseModel):
    label: str
    score: float


class FakeStructured:
    def __init__(self, result):
        self.result = result

    async def ainvoke(self, messages):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeModel:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def with_structured_output(self, schema):
        self.calls += 1
        return FakeStructured(self.result)


@pytest.fixture
def no_keys(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", None)
    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)


@pytest.mark.asyncio
async def test_service_without_keys_raises_completion_error(no_keys):
    service = AIService()
    assert service.available is False
    assert isinstance(service, CompletionPort)
    with pytest.raises(CompletionError):
        await service.classify("hi", Verdict)
    with pytest.raises(AIProviderError):
        await service.generate("hi")


@pytest.mark.asyncio
async def test_classify_fails_over_in_configured_order(no_keys, monkeypatch):
    monkeypatch.setattr(settings, "PRIMARY_AI_PROVIDER", "groq")
    monkeypatch.setattr(settings, "SECONDARY_AI_PROVIDER", "openai")
    service = AIService()
    broken = FakeModel(RuntimeError("rate limited"))
    healthy = FakeModel({"label": "ok", "score": 0.9})
    unused = FakeModel({"label": "unused", "score": 0.1})
    service.models = {AIProvider.GEMINI: unused, AIProvider.GROQ: broken, AIProvider.OPENAI: healthy}

    assert service._get_provider_order() == [AIProvider.GROQ, AIProvider.OPENAI, AIProvider.GEMINI]
    result = await service.classify("classify this", Verdict, system="be brief")

    assert result == Verdict(label="ok", score=0.9)
    assert broken.calls == 1
    assert unused.calls == 0


@pytest.mark.asyncio
async def test_classify_reports_last_error(no_keys):
    service = AIService()
    service.models = {AIProvider.GROQ: FakeModel({"label": "missing score"})}
    with pytest.raises(AIProviderError, match="All AI providers failed"):
        await service.classify("classify this", Verdict)


def test_coerce_structured_accepts_json_and_fences():
    assert coerce_structured(Verdict, '```json\n{"label": "a", "score": 1}\n```') == Verdict(label="a", score=1)
    assert coerce_structured(Verdict, {"label": "b", "score": 0}) == Verdict(label="b", score=0)
    with pytest.raises(CompletionError):
        coerce_structured(Verdict, "not json")
    assert strip_code_fences("```\n{}\n```") == "{}"
