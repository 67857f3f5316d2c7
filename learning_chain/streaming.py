#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Потоковая выдача ответа как последовательности событий-токенов."""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

TokenCallback = Callable[[str], None]


@dataclass(frozen=True)
class TokenEvent:
    """Один фрагмент сгенерированного ответа и его порядковый номер."""
    text: str
    index: int


class TokenStream:
    """Итератор по токенам ответа поверх генератора LlamaIndex.

    - on_token: необязательный приёмник, вызывается на каждый токен (без буферизации)
    - close(): прекращает чтение и закрывает исходный генератор
    - text: накопленный к текущему моменту ответ
    """
    def __init__(
        self,
        tokens: Iterator[str],
        on_token: Optional[TokenCallback] = None,
        standalone_question: str = "",
        sources: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self._tokens = tokens
        self._on_token = on_token
        self._parts: List[str] = []
        self._closed = False
        self.standalone_question = standalone_question
        self.sources = sources or []

    def __iter__(self) -> Iterator[TokenEvent]:
        for token in self._tokens:
            if self._closed:
                break
            if not token:
                continue
            event = TokenEvent(text=token, index=len(self._parts))
            self._parts.append(token)
            if self._on_token is not None:
                self._on_token(token)
            yield event

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def closed(self) -> bool:
        return self._closed

    def consume(self) -> str:
        """Дочитывает поток до конца и возвращает полный текст."""
        for _ in self:
            pass
        return self.text

    def close(self) -> None:
        self._closed = True
        close = getattr(self._tokens, "close", None)
        if close is not None:
            close()
