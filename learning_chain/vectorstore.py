#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Утилиты подключения к Weaviate (embedded или remote) и открытия готового индекса."""

from __future__ import annotations

import logging
from typing import Tuple
from urllib.parse import urlparse

import weaviate
from weaviate.classes.init import Auth

from llama_index.core import VectorStoreIndex
from llama_index.embeddings.huggingface import HuggingFaceEmbedding
from llama_index.vector_stores.weaviate import WeaviateVectorStore

from .config import EmbeddingConfig, VectorStoreConfig

logger = logging.getLogger(__name__)


def make_weaviate_client(cfg: VectorStoreConfig) -> weaviate.WeaviateClient:
    """Создаёт клиент Weaviate в зависимости от конфигурации.

    - embedded: локальный встроенный сервер Weaviate (без внешних сервисов)
    - remote: подключение к удалённому Weaviate (Docker/K8s) по URL, опционально с API‑ключом
    """
    if cfg.use_embedded:
        return weaviate.connect_to_embedded()
    if not cfg.weaviate_url:
        raise RuntimeError("Remote Weaviate запрошен, но URL не указан.")

    url = urlparse(cfg.weaviate_url)
    secure = url.scheme == "https"
    auth = Auth.api_key(cfg.weaviate_api_key) if cfg.weaviate_api_key else None
    return weaviate.connect_to_custom(
        http_host=url.hostname,
        http_port=url.port or (443 if secure else 80),
        http_secure=secure,
        grpc_host=url.hostname,
        grpc_port=cfg.grpc_port,
        grpc_secure=secure,
        auth_credentials=auth,
    )


def open_index(
    vs_cfg: VectorStoreConfig, emb_cfg: EmbeddingConfig
) -> Tuple[VectorStoreIndex, weaviate.WeaviateClient]:
    """Открывает уже построенный индекс проекта.

    Возвращает индекс и клиент; клиент закрывает вызывающий, когда индекс больше не нужен.
    """
    client = make_weaviate_client(vs_cfg)
    vector_store = WeaviateVectorStore(weaviate_client=client, index_name=vs_cfg.index_name)
    embed_model = HuggingFaceEmbedding(
        model_name=emb_cfg.model_name,
        embed_batch_size=emb_cfg.embed_batch_size,
    )
    logger.info("opening index %s (embedding model %s)", vs_cfg.index_name, emb_cfg.model_name)
    index = VectorStoreIndex.from_vector_store(vector_store, embed_model=embed_model)
    return index, client
