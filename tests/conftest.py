"""
Общие фикстуры: фейковая LLM и маленький in-memory индекс.

Никаких сетевых вызовов: эмбеддинги — MockEmbedding из LlamaIndex,
LLM — CustomLLM, который запоминает промпты и отвечает заготовками.
"""

from typing import Any, List

import pytest
from llama_index.core import Document, VectorStoreIndex
from llama_index.core.embeddings import MockEmbedding
from llama_index.core.llms import (
    CompletionResponse,
    CompletionResponseGen,
    CustomLLM,
    LLMMetadata,
)

from learning_chain import chain as chain_mod

STANDALONE = "What does make_chain return?"
ANSWER_TOKENS = ["The ", "chain ", "answers ", "questions."]


class FakeLLM(CustomLLM):
    """Подменяет OpenAIChatLLM: хранит аргументы конструктора и все промпты."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__()
        self._kwargs = kwargs
        self._prompts: List[str] = []

    @property
    def metadata(self) -> LLMMetadata:
        return LLMMetadata(model_name=self._kwargs.get("model_name", "fake"), context_window=8192, num_output=256)

    @property
    def kwargs(self) -> dict:
        return self._kwargs

    @property
    def prompts(self) -> List[str]:
        return self._prompts

    def _reply(self, prompt: str) -> str:
        if "Standalone question:" in prompt:
            return f"  {STANDALONE}  "
        return "".join(ANSWER_TOKENS)

    def complete(self, prompt: str, **kwargs: Any) -> CompletionResponse:
        self._prompts.append(prompt)
        return CompletionResponse(text=self._reply(prompt))

    def stream_complete(self, prompt: str, **kwargs: Any) -> CompletionResponseGen:
        self._prompts.append(prompt)
        buffer = []
        for token in ANSWER_TOKENS:
            buffer.append(token)
            yield CompletionResponse(text="".join(buffer), delta=token)


@pytest.fixture
def fake_llm(monkeypatch):
    """Подменяет OpenAIChatLLM в модуле цепочки и возвращает класс-подмену."""
    monkeypatch.setattr(chain_mod, "OpenAIChatLLM", FakeLLM)
    return FakeLLM


@pytest.fixture
def vector_index() -> VectorStoreIndex:
    docs = [
        Document(
            text="make_chain builds a conversational chain from a vector index and a list of models.",
            metadata={"source": "learning_chain/chain.py"},
        ),
    ]
    return VectorStoreIndex.from_documents(docs, embed_model=MockEmbedding(embed_dim=8))


@pytest.fixture
def empty_index() -> VectorStoreIndex:
    return VectorStoreIndex([], embed_model=MockEmbedding(embed_dim=8))
