#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import os
from dataclasses import dataclass
from typing import Optional, Sequence

from .exceptions import EmptyModelListError


@dataclass(frozen=True)
class ProjectContext:
    """Описание проекта, о котором отвечает чат.

    - project_name: имя проекта, подставляется в роль ассистента
    - repository_url: URL репозитория с исходниками
    - content_type: что проиндексировано (например, "source code" или "docs")
    - chat_prompt: дополнительные инструкции; пустая строка отключает секцию
    - target_audience: для кого пишется ответ ("junior developer" и т.п.)
    """
    project_name: str
    repository_url: str
    content_type: str = "source code"
    chat_prompt: str = ""
    target_audience: str = "smart developer"


@dataclass(frozen=True)
class ModelSelection:
    """Какую модель использовать для переписывания вопроса и для ответа.

    - preferred_model: более сильная модель (если доступна)
    - fallback_model: модель, которая используется, когда preferred не задана
    """
    fallback_model: str
    preferred_model: Optional[str] = None

    @classmethod
    def from_list(cls, models: Sequence[str]) -> "ModelSelection":
        """Строит выбор из упорядоченного списка: второй элемент считается
        более сильной моделью, первый запасной."""
        if not models:
            raise EmptyModelListError("At least one model identifier is required.")
        preferred = models[1] if len(models) > 1 else None
        return cls(fallback_model=models[0], preferred_model=preferred)

    @property
    def selected(self) -> str:
        return self.preferred_model if self.preferred_model is not None else self.fallback_model


@dataclass
class LLMConfig:
    """Параметры OpenAI-совместимого Chat API.

    - base_url, api_key: адрес и ключ сервиса
    - condense_temperature: температура для переписывания вопроса
    - qa_temperature: температура для итогового ответа
    - frequency_penalty, presence_penalty, max_tokens: параметры генерации
    - context_window: размер окна модели, нужен LlamaIndex для упаковки контекста
    - timeout: таймаут HTTP-запроса в секундах
    - system_prompt: системное сообщение (None — без роли system)
    """
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    condense_temperature: float = 0.1
    qa_temperature: float = 0.2
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    max_tokens: int = 1024
    context_window: int = 8192
    timeout: float = 60.0
    system_prompt: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Читает адрес и ключ из OPENAI_BASE_URL / OPENAI_API_KEY."""
        return cls(
            base_url=os.environ.get("OPENAI_BASE_URL") or None,
            api_key=os.environ.get("OPENAI_API_KEY") or None,
        )


@dataclass
class RetrievalConfig:
    """Параметры извлечения контекста.

    - similarity_top_k: сколько фрагментов доставать из индекса на вопрос
    """
    similarity_top_k: int = 4


@dataclass
class EmbeddingConfig:
    """Параметры модели эмбеддингов.

    - model_name: имя модели HuggingFace для векторизации запроса
    - embed_batch_size: размер батча при построении эмбеддингов
    """
    model_name: str = "BAAI/bge-small-en-v1.5"
    embed_batch_size: int = 32


@dataclass
class VectorStoreConfig:
    """Параметры векторного хранилища (Weaviate).

    - index_name: имя коллекции в Weaviate
    - use_embedded: использовать ли встроенный (embedded) Weaviate
    - weaviate_url: URL удалённого Weaviate (если используется)
    - weaviate_api_key: API-ключ для удалённого Weaviate (опционально)
    - grpc_port: порт gRPC удалённого Weaviate
    """
    index_name: str = "LearningIndex"
    use_embedded: bool = True
    weaviate_url: Optional[str] = None
    weaviate_api_key: Optional[str] = None
    grpc_port: int = 50051
