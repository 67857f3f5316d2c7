#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import logging
import time
from typing import Any, Dict, Iterator, List, Optional, Tuple

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from learning_chain.chain import make_chain
from learning_chain.config import (
    EmbeddingConfig,
    LLMConfig,
    ModelSelection,
    ProjectContext,
    RetrievalConfig,
    VectorStoreConfig,
)
from learning_chain.exceptions import LearningChainError
from learning_chain.vectorstore import open_index

load_dotenv()

logger = logging.getLogger(__name__)

app = FastAPI(title="Project Learning Chat API (OpenAI-compatible)", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AskRequest(BaseModel):
    """Тело запроса: вопрос, история, описание проекта и параметры моделей/индекса."""
    question: str
    chat_history: List[Tuple[str, str]] = []
    project_name: str
    repository_url: str
    content_type: str = "source code"
    chat_prompt: str = ""
    target_audience: str = "smart developer"
    models: List[str] = ["gpt-3.5-turbo", "gpt-4"]
    index_name: str  # имя коллекции в Weaviate
    weaviate_url: Optional[str] = None
    weaviate_api_key: Optional[str] = None
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    openai_base_url: Optional[str] = None
    openai_api_key: Optional[str] = None
    top_k: int = 4


class AskResponse(BaseModel):
    """Ответ: текст, переписанный вопрос, новая история, источники и время выполнения."""
    answer: str
    standalone_question: str
    chat_history: List[Tuple[str, str]]
    sources: List[Dict[str, Any]]
    took_ms: int


def _configs(req: AskRequest) -> Tuple[ProjectContext, VectorStoreConfig, EmbeddingConfig, LLMConfig, RetrievalConfig]:
    project = ProjectContext(
        project_name=req.project_name,
        repository_url=req.repository_url,
        content_type=req.content_type,
        chat_prompt=req.chat_prompt,
        target_audience=req.target_audience,
    )
    vs_cfg = VectorStoreConfig(
        index_name=req.index_name,
        use_embedded=(req.weaviate_url is None),
        weaviate_url=req.weaviate_url,
        weaviate_api_key=req.weaviate_api_key,
    )
    emb_cfg = EmbeddingConfig(model_name=req.embedding_model)
    env_cfg = LLMConfig.from_env()
    llm_cfg = LLMConfig(
        base_url=req.openai_base_url or env_cfg.base_url,
        api_key=req.openai_api_key or env_cfg.api_key,
    )
    ret_cfg = RetrievalConfig(similarity_top_k=req.top_k)
    return project, vs_cfg, emb_cfg, llm_cfg, ret_cfg


@app.get("/health")
def health() -> Dict[str, str]:
    """Простой health-check эндпоинт для мониторинга/оркестраторов."""
    return {"status": "ok"}


@app.post("/ask", response_model=AskResponse)
def ask(req: AskRequest) -> AskResponse:
    """Отвечает на вопрос о проекте по ранее построенному индексу с учётом истории."""
    t0 = time.time()
    project, vs_cfg, emb_cfg, llm_cfg, ret_cfg = _configs(req)
    client = None
    try:
        models = ModelSelection.from_list(req.models)
        index, client = open_index(vs_cfg, emb_cfg)
        chain = make_chain(project, index, models, llm_cfg=llm_cfg, ret_cfg=ret_cfg)
        result = chain.ask(req.question, req.chat_history)
        took_ms = int((time.time() - t0) * 1000)
        return AskResponse(
            answer=result.answer,
            standalone_question=result.standalone_question,
            chat_history=result.chat_history,
            sources=result.sources,
            took_ms=took_ms,
        )
    except LearningChainError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("ask failed for index %s", req.index_name)
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        if client is not None:
            client.close()


@app.post("/ask/stream")
def ask_stream(req: AskRequest) -> StreamingResponse:
    """То же, что /ask, но ответ отдаётся текстом по мере генерации."""
    project, vs_cfg, emb_cfg, llm_cfg, ret_cfg = _configs(req)
    client = None
    try:
        models = ModelSelection.from_list(req.models)
        index, client = open_index(vs_cfg, emb_cfg)
        chain = make_chain(project, index, models, streaming=True, llm_cfg=llm_cfg, ret_cfg=ret_cfg)
        stream = chain.stream(req.question, req.chat_history)
    except LearningChainError as e:
        if client is not None:
            client.close()
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        if client is not None:
            client.close()
        logger.exception("ask/stream failed for index %s", req.index_name)
        raise HTTPException(status_code=500, detail=str(e))

    def _tokens() -> Iterator[str]:
        try:
            for event in stream:
                yield event.text
        finally:
            stream.close()
            client.close()

    return StreamingResponse(_tokens(), media_type="text/plain; charset=utf-8")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=False)
