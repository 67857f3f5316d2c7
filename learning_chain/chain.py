#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from llama_index.core import PromptTemplate, QueryBundle, VectorStoreIndex, get_response_synthesizer
from llama_index.core.base.response.schema import StreamingResponse
from llama_index.core.query_engine import RetrieverQueryEngine

from .config import LLMConfig, ModelSelection, ProjectContext, RetrievalConfig
from .exceptions import StreamingDisabledError
from .llm import OpenAIChatLLM
from .prompts import DEFAULT_TEMPLATE_VERSION, make_condense_prompt, make_qa_prompt
from .streaming import TokenCallback, TokenStream

logger = logging.getLogger(__name__)

ChatHistory = Sequence[Tuple[str, str]]


@dataclass
class ChainResult:
    """Результат одного вопроса: ответ, переписанный вопрос, новая история и источники."""
    answer: str
    standalone_question: str
    chat_history: List[Tuple[str, str]]
    sources: List[Dict[str, Any]] = field(default_factory=list)


def format_chat_history(chat_history: ChatHistory) -> str:
    """Превращает пары (вопрос, ответ) в текст для промпта переписывания."""
    lines = []
    for human, assistant in chat_history:
        lines.append(f"Human: {human}")
        lines.append(f"Assistant: {assistant}")
    return "\n".join(lines)


def _collect_sources(response: Any) -> List[Dict[str, Any]]:
    sources: List[Dict[str, Any]] = []
    for sn in getattr(response, "source_nodes", None) or []:
        meta = sn.node.metadata or {}
        sources.append({
            "score": sn.score,
            "source": meta.get("source") or meta.get("file_path") or meta.get("file_name"),
            "snippet": sn.node.get_content().strip()[:300],
        })
    return sources


class LearningChain:
    """Разговорная RAG-цепочка по проекту.

    - condense: переписывает вопрос с учётом истории в самостоятельный
    - retriever: достаёт похожие фрагменты из векторного индекса
    - response synthesizer: отвечает по промпту проекта на основе фрагментов

    Индекс принадлежит вызывающему; между вызовами цепочка состояния не хранит,
    историю передаёт и получает обратно вызывающий.
    """
    def __init__(
        self,
        vector_index: VectorStoreIndex,
        condense_llm: OpenAIChatLLM,
        condense_prompt: PromptTemplate,
        qa_llm: OpenAIChatLLM,
        qa_prompt: PromptTemplate,
        ret_cfg: RetrievalConfig,
        streaming: bool = False,
        on_token_stream: Optional[TokenCallback] = None,
    ) -> None:
        self._index = vector_index
        self._condense_llm = condense_llm
        self._condense_prompt = condense_prompt
        self._qa_llm = qa_llm
        self._qa_prompt = qa_prompt
        self._ret_cfg = ret_cfg
        self._streaming = streaming
        self._on_token_stream = on_token_stream

        self._response_synth = get_response_synthesizer(
            llm=self._qa_llm,
            text_qa_template=self._qa_prompt,
            streaming=self._streaming,
        )
        self._query_engine = RetrieverQueryEngine(
            retriever=self._index.as_retriever(similarity_top_k=self._ret_cfg.similarity_top_k),
            response_synthesizer=self._response_synth,
        )

    @property
    def streaming(self) -> bool:
        return self._streaming

    @property
    def condense_llm(self) -> OpenAIChatLLM:
        return self._condense_llm

    @property
    def qa_llm(self) -> OpenAIChatLLM:
        return self._qa_llm

    @property
    def qa_prompt(self) -> PromptTemplate:
        return self._qa_prompt

    def condense_question(self, question: str, chat_history: ChatHistory) -> str:
        """Возвращает самостоятельный вопрос; без истории вопрос не меняется и LLM не вызывается."""
        if not chat_history:
            return question
        standalone = self._condense_llm.predict(
            self._condense_prompt,
            chat_history=format_chat_history(chat_history),
            question=question,
        ).strip()
        logger.debug("standalone question: %s", standalone)
        return standalone

    async def acondense_question(self, question: str, chat_history: ChatHistory) -> str:
        if not chat_history:
            return question
        standalone = (await self._condense_llm.apredict(
            self._condense_prompt,
            chat_history=format_chat_history(chat_history),
            question=question,
        )).strip()
        logger.debug("standalone question: %s", standalone)
        return standalone

    def _answer(self, standalone: str) -> Tuple[Union[str, Iterator[str]], List[Dict[str, Any]]]:
        """Поиск и синтез ответа.

        Возвращает готовый текст или генератор токенов (при streaming) и источники.
        Если индекс ничего не нашёл, модель всё равно вызывается с пустым контекстом,
        чтобы ответ шёл по правилам промпта, а не был заглушкой синтезатора.
        """
        query_bundle = QueryBundle(standalone)
        nodes = self._query_engine.retrieve(query_bundle)
        if not nodes:
            logger.debug("no context retrieved for: %s", standalone)
            if self._streaming:
                return self._qa_llm.stream(self._qa_prompt, context_str="", query_str=standalone), []
            return self._qa_llm.predict(self._qa_prompt, context_str="", query_str=standalone), []

        response = self._query_engine.synthesize(query_bundle, nodes)
        if isinstance(response, StreamingResponse):
            return response.response_gen, _collect_sources(response)
        return str(response), _collect_sources(response)

    async def _aanswer(self, standalone: str) -> Tuple[Union[str, Iterator[str], AsyncIterator[str]], List[Dict[str, Any]]]:
        query_bundle = QueryBundle(standalone)
        nodes = await self._query_engine.aretrieve(query_bundle)
        if not nodes:
            logger.debug("no context retrieved for: %s", standalone)
            if self._streaming:
                return await self._qa_llm.astream(self._qa_prompt, context_str="", query_str=standalone), []
            return await self._qa_llm.apredict(self._qa_prompt, context_str="", query_str=standalone), []

        response = await self._query_engine.asynthesize(query_bundle, nodes)
        if isinstance(response, StreamingResponse):
            return response.response_gen, _collect_sources(response)
        if hasattr(response, "async_response_gen"):
            return response.async_response_gen(), _collect_sources(response)
        return str(response), _collect_sources(response)

    def _result(self, question: str, chat_history: ChatHistory, standalone: str,
                answer: str, sources: List[Dict[str, Any]]) -> ChainResult:
        logger.debug("answered with %d sources", len(sources))
        return ChainResult(
            answer=answer,
            standalone_question=standalone,
            chat_history=[*chat_history, (question, answer)],
            sources=sources,
        )

    def ask(self, question: str, chat_history: ChatHistory = ()) -> ChainResult:
        """Отвечает на вопрос и возвращает ответ вместе с обновлённой историей.

        Если цепочка собрана со streaming, токены по мере генерации уходят
        в on_token_stream, а в результат попадает полный текст.
        """
        standalone = self.condense_question(question, chat_history)
        output, sources = self._answer(standalone)
        if isinstance(output, str):
            answer = output
        else:
            answer = TokenStream(output, on_token=self._on_token_stream).consume()
        return self._result(question, chat_history, standalone, answer, sources)

    async def aask(self, question: str, chat_history: ChatHistory = ()) -> ChainResult:
        """Асинхронный вариант ask: переписывание, затем поиск и синтез, строго по очереди."""
        standalone = await self.acondense_question(question, chat_history)
        output, sources = await self._aanswer(standalone)
        if isinstance(output, str):
            answer = output
        elif hasattr(output, "__aiter__"):
            parts = []
            async for token in output:
                if not token:
                    continue
                if self._on_token_stream is not None:
                    self._on_token_stream(token)
                parts.append(token)
            answer = "".join(parts)
        else:
            answer = TokenStream(output, on_token=self._on_token_stream).consume()
        return self._result(question, chat_history, standalone, answer, sources)

    def stream(self, question: str, chat_history: ChatHistory = ()) -> TokenStream:
        """Возвращает поток токенов ответа. Требует цепочку, собранную со streaming."""
        if not self._streaming:
            raise StreamingDisabledError("Chain was built without streaming enabled.")
        standalone = self.condense_question(question, chat_history)
        output, sources = self._answer(standalone)
        tokens = iter([output]) if isinstance(output, str) else output
        return TokenStream(
            tokens,
            on_token=self._on_token_stream,
            standalone_question=standalone,
            sources=sources,
        )


def make_chain(
    project: ProjectContext,
    vector_index: VectorStoreIndex,
    models: Union[ModelSelection, Sequence[str]],
    on_token_stream: Optional[TokenCallback] = None,
    streaming: bool = False,
    llm_cfg: Optional[LLMConfig] = None,
    ret_cfg: Optional[RetrievalConfig] = None,
    template_version: str = DEFAULT_TEMPLATE_VERSION,
) -> LearningChain:
    """Собирает цепочку: переписывание вопроса + ответ по контексту из индекса.

    - models: ModelSelection или упорядоченный список (второй элемент — более сильная модель)
    - on_token_stream: приёмник токенов; если задан, ответ генерируется потоково
    - streaming: включить потоковый ответ без приёмника (для stream())
    """
    selection = models if isinstance(models, ModelSelection) else ModelSelection.from_list(models)
    llm_cfg = llm_cfg or LLMConfig.from_env()
    ret_cfg = ret_cfg or RetrievalConfig()
    model = selection.selected

    condense_llm = OpenAIChatLLM(
        model_name=model,
        base_url=llm_cfg.base_url,
        api_key=llm_cfg.api_key,
        temperature=llm_cfg.condense_temperature,
        max_tokens=llm_cfg.max_tokens,
        context_window=llm_cfg.context_window,
        timeout=llm_cfg.timeout,
        system_prompt=llm_cfg.system_prompt,
    )
    qa_llm = OpenAIChatLLM(
        model_name=model,
        base_url=llm_cfg.base_url,
        api_key=llm_cfg.api_key,
        temperature=llm_cfg.qa_temperature,
        frequency_penalty=llm_cfg.frequency_penalty,
        presence_penalty=llm_cfg.presence_penalty,
        max_tokens=llm_cfg.max_tokens,
        context_window=llm_cfg.context_window,
        timeout=llm_cfg.timeout,
        system_prompt=llm_cfg.system_prompt,
    )

    logger.info(
        "building learning chain for %s: model=%s streaming=%s template=%s",
        project.project_name, model, bool(on_token_stream) or streaming, template_version,
    )
    return LearningChain(
        vector_index=vector_index,
        condense_llm=condense_llm,
        condense_prompt=make_condense_prompt(template_version),
        qa_llm=qa_llm,
        qa_prompt=make_qa_prompt(project, template_version),
        ret_cfg=ret_cfg,
        streaming=bool(on_token_stream) or streaming,
        on_token_stream=on_token_stream,
    )
