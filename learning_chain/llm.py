#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import logging
from typing import Any, Dict, List, Optional

from llama_index.core.llms import (
    CompletionResponse,
    CompletionResponseGen,
    CustomLLM,
    LLMMetadata,
)
from openai import OpenAI

logger = logging.getLogger(__name__)


class OpenAIChatLLM(CustomLLM):
    """Адаптер LlamaIndex CustomLLM для OpenAI-совместимого Chat Completions API.

    Оборачивает клиента OpenAI, чтобы использовать его внутри LlamaIndex
    как обычную LLM: поддерживает complete и stream_complete. Ошибки клиента
    (сеть, авторизация, rate limit) пробрасываются вызывающему как есть.
    """
    def __init__(
        self,
        model_name: str,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        frequency_penalty: float = 0.0,
        presence_penalty: float = 0.0,
        max_tokens: int = 1024,
        context_window: int = 8192,
        timeout: float = 60.0,
        system_prompt: Optional[str] = None,
    ) -> None:
        super().__init__()
        self._client = OpenAI(base_url=base_url, api_key=api_key, timeout=timeout)
        self._model = model_name
        self._temperature = float(temperature)
        self._frequency_penalty = float(frequency_penalty)
        self._presence_penalty = float(presence_penalty)
        self._max_tokens = int(max_tokens)
        self._context_window = int(context_window)
        self._system_prompt = system_prompt

    @property
    def metadata(self) -> LLMMetadata:
        return LLMMetadata(
            model_name=self._model,
            context_window=self._context_window,
            num_output=self._max_tokens,
        )

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def temperature(self) -> float:
        return self._temperature

    def _make_messages(self, user_prompt: str) -> List[Dict[str, str]]:
        """Формирует список сообщений (system, если задан, + user) для Chat API."""
        messages = []
        if self._system_prompt:
            messages.append({"role": "system", "content": self._system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        return messages

    def _request_kwargs(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self._model,
            "messages": self._make_messages(prompt),
            "temperature": self._temperature,
            "frequency_penalty": self._frequency_penalty,
            "presence_penalty": self._presence_penalty,
            "max_tokens": self._max_tokens,
        }

    def complete(self, prompt: str, **kwargs: Any) -> CompletionResponse:
        """Синхронное получение единого текста ответа для переданного промпта."""
        logger.debug("completion request: model=%s temperature=%s", self._model, self._temperature)
        resp = self._client.chat.completions.create(**self._request_kwargs(prompt))
        text = (resp.choices[0].message.content or "").strip()
        return CompletionResponse(text=text)

    def stream_complete(self, prompt: str, **kwargs: Any) -> CompletionResponseGen:
        """Потоковая генерация: каждый ответ несёт накопленный текст и новый фрагмент в delta."""
        logger.debug("streaming request: model=%s temperature=%s", self._model, self._temperature)
        stream = self._client.chat.completions.create(stream=True, **self._request_kwargs(prompt))

        buffer = []
        for event in stream:
            if not event.choices:
                continue
            delta = event.choices[0].delta.content or ""
            if delta:
                buffer.append(delta)
                yield CompletionResponse(text="".join(buffer), delta=delta)
