"""
Тесты сборки и работы LearningChain.

Сценарии:
- выбор модели и температуры для переписывания вопроса и ответа
- переписывание вопроса только при непустой истории
- потоковый ответ через приёмник токенов и через stream()
- асинхронный ask (в том числе потоковый)
- пустой индекс: модель всё равно отвечает по промпту

Запуск тестов:
  pytest -q tests/test_chain.py
"""

import asyncio

import pytest

from learning_chain.chain import format_chat_history, make_chain
from learning_chain.config import LLMConfig, ModelSelection, ProjectContext
from learning_chain.exceptions import EmptyModelListError, StreamingDisabledError

from .conftest import ANSWER_TOKENS, STANDALONE

ACME = ProjectContext(
    project_name="Acme",
    repository_url="https://x",
    content_type="source code",
    chat_prompt="",
    target_audience="junior developer",
)
LLM_CFG = LLMConfig(base_url="http://localhost:8080/v1", api_key="test")
HISTORY = [("What is make_chain?", "It builds the chain.")]


def test_end_to_end_model_selection(fake_llm, vector_index) -> None:
    chain = make_chain(ACME, vector_index, ["gpt-3", "gpt-4"], llm_cfg=LLM_CFG)

    assert chain.condense_llm.kwargs["model_name"] == "gpt-4"
    assert chain.qa_llm.kwargs["model_name"] == "gpt-4"
    assert "AI teacher for a software project called Acme" in chain.qa_prompt.template


def test_single_model_and_temperatures(fake_llm, vector_index) -> None:
    chain = make_chain(ACME, vector_index, ["gpt-3"], llm_cfg=LLM_CFG)

    assert chain.condense_llm.kwargs["model_name"] == "gpt-3"
    assert chain.qa_llm.kwargs["model_name"] == "gpt-3"
    assert chain.condense_llm.kwargs["temperature"] == 0.1
    assert chain.qa_llm.kwargs["temperature"] == 0.2
    assert chain.qa_llm.kwargs["frequency_penalty"] == 0.0
    assert chain.qa_llm.kwargs["presence_penalty"] == 0.0


def test_explicit_model_selection(fake_llm, vector_index) -> None:
    selection = ModelSelection(fallback_model="small", preferred_model="large")
    chain = make_chain(ACME, vector_index, selection, llm_cfg=LLM_CFG)

    assert chain.qa_llm.kwargs["model_name"] == "large"


def test_empty_model_list_fails_before_building(fake_llm, vector_index) -> None:
    with pytest.raises(EmptyModelListError):
        make_chain(ACME, vector_index, [], llm_cfg=LLM_CFG)


def test_streaming_follows_token_callback(fake_llm, vector_index) -> None:
    assert make_chain(ACME, vector_index, ["gpt-4"], llm_cfg=LLM_CFG).streaming is False
    assert make_chain(ACME, vector_index, ["gpt-4"], on_token_stream=print, llm_cfg=LLM_CFG).streaming is True


def test_ask_without_history_skips_rewrite(fake_llm, vector_index) -> None:
    chain = make_chain(ACME, vector_index, ["gpt-3", "gpt-4"], llm_cfg=LLM_CFG)

    result = chain.ask("What does make_chain return?")

    assert chain.condense_llm.prompts == []
    assert result.standalone_question == "What does make_chain return?"
    assert result.answer == "".join(ANSWER_TOKENS)
    assert result.chat_history == [("What does make_chain return?", result.answer)]
    assert result.sources and result.sources[0]["source"] == "learning_chain/chain.py"

    qa_prompt = chain.qa_llm.prompts[-1]
    assert "Question: What does make_chain return?" in qa_prompt
    assert "make_chain builds a conversational chain" in qa_prompt


def test_ask_with_history_rewrites_question(fake_llm, vector_index) -> None:
    chain = make_chain(ACME, vector_index, ["gpt-3", "gpt-4"], llm_cfg=LLM_CFG)

    result = chain.ask("And what does it return?", HISTORY)

    assert len(chain.condense_llm.prompts) == 1
    condense_prompt = chain.condense_llm.prompts[0]
    assert "Human: What is make_chain?\nAssistant: It builds the chain." in condense_prompt
    assert "Follow Up Input: And what does it return?" in condense_prompt

    assert result.standalone_question == STANDALONE
    assert f"Question: {STANDALONE}" in chain.qa_llm.prompts[-1]
    assert result.chat_history == HISTORY + [("And what does it return?", result.answer)]


def test_ask_streams_tokens_to_callback(fake_llm, vector_index) -> None:
    tokens = []
    chain = make_chain(ACME, vector_index, ["gpt-4"], on_token_stream=tokens.append, llm_cfg=LLM_CFG)

    result = chain.ask("What does make_chain return?")

    assert tokens == ANSWER_TOKENS
    assert result.answer == "".join(ANSWER_TOKENS)


def test_stream_yields_token_events(fake_llm, vector_index) -> None:
    chain = make_chain(ACME, vector_index, ["gpt-4"], streaming=True, llm_cfg=LLM_CFG)

    stream = chain.stream("And what does it return?", HISTORY)
    texts = [event.text for event in stream]

    assert texts == ANSWER_TOKENS
    assert stream.standalone_question == STANDALONE
    assert stream.sources


def test_stream_requires_streaming_chain(fake_llm, vector_index) -> None:
    chain = make_chain(ACME, vector_index, ["gpt-4"], llm_cfg=LLM_CFG)

    with pytest.raises(StreamingDisabledError):
        chain.stream("anything")


def test_aask_rewrites_then_answers(fake_llm, vector_index) -> None:
    chain = make_chain(ACME, vector_index, ["gpt-3", "gpt-4"], llm_cfg=LLM_CFG)

    result = asyncio.run(chain.aask("And what does it return?", HISTORY))

    assert result.standalone_question == STANDALONE
    assert result.answer == "".join(ANSWER_TOKENS)
    assert len(result.chat_history) == 2


def test_remote_errors_propagate(fake_llm, vector_index, monkeypatch) -> None:
    chain = make_chain(ACME, vector_index, ["gpt-4"], llm_cfg=LLM_CFG)

    def _boom(*args, **kwargs):
        raise ConnectionError("rate limited")

    monkeypatch.setattr(type(chain.qa_llm), "complete", _boom)
    with pytest.raises(ConnectionError, match="rate limited"):
        chain.ask("anything")


def test_format_chat_history() -> None:
    assert format_chat_history([("q1", "a1"), ("q2", "a2")]) == (
        "Human: q1\nAssistant: a1\nHuman: q2\nAssistant: a2"
    )
    assert format_chat_history([]) == ""


def test_aask_streams_tokens_to_callback(fake_llm, vector_index) -> None:
    tokens = []
    chain = make_chain(ACME, vector_index, ["gpt-4"], on_token_stream=tokens.append, llm_cfg=LLM_CFG)

    result = asyncio.run(chain.aask("What does make_chain return?"))

    assert tokens == ANSWER_TOKENS
    assert result.answer == "".join(ANSWER_TOKENS)
    assert result.sources


def test_ask_with_empty_index_still_calls_model(fake_llm, empty_index) -> None:
    chain = make_chain(ACME, empty_index, ["gpt-4"], llm_cfg=LLM_CFG)

    result = chain.ask("What does make_chain return?")

    assert result.answer == "".join(ANSWER_TOKENS)
    assert result.answer != "Empty Response"
    assert result.sources == []
    assert result.chat_history == [("What does make_chain return?", result.answer)]
    qa_prompt = chain.qa_llm.prompts[-1]
    assert "Question: What does make_chain return?" in qa_prompt
    assert "Context:\n\n" in qa_prompt


def test_streaming_ask_with_empty_index(fake_llm, empty_index) -> None:
    tokens = []
    chain = make_chain(ACME, empty_index, ["gpt-4"], on_token_stream=tokens.append, llm_cfg=LLM_CFG)

    result = chain.ask("What does make_chain return?")

    assert tokens == ANSWER_TOKENS
    assert result.answer == "".join(ANSWER_TOKENS)
    assert len(chain.qa_llm.prompts) == 1


def test_stream_with_empty_index(fake_llm, empty_index) -> None:
    chain = make_chain(ACME, empty_index, ["gpt-4"], streaming=True, llm_cfg=LLM_CFG)

    stream = chain.stream("What does make_chain return?")

    assert [event.text for event in stream] == ANSWER_TOKENS
    assert stream.sources == []


def test_aask_with_empty_index(fake_llm, empty_index) -> None:
    chain = make_chain(ACME, empty_index, ["gpt-4"], llm_cfg=LLM_CFG)

    result = asyncio.run(chain.aask("What does make_chain return?"))

    assert result.answer == "".join(ANSWER_TOKENS)
    assert result.sources == []
