"""Разговорная QA-цепочка по проекту поверх LlamaIndex.

Содержит:
- config: dataclass-конфиги проекта, выбора модели, LLM, извлечения и хранилища
- prompts: версионированные шаблоны промптов (переписывание вопроса и ответ)
- llm: адаптер LlamaIndex CustomLLM для OpenAI‑совместимого Chat API
- streaming: поток токенов ответа (TokenStream)
- chain: сборка цепочки rewriter + retriever + synthesizer (make_chain)
- vectorstore: клиент Weaviate и открытие готового индекса
"""
from .chain import ChainResult, LearningChain, make_chain
from .config import ModelSelection, ProjectContext
from .exceptions import EmptyModelListError, LearningChainError, TemplateError
from .streaming import TokenEvent, TokenStream

__all__ = [
    "ChainResult",
    "EmptyModelListError",
    "LearningChain",
    "LearningChainError",
    "ModelSelection",
    "ProjectContext",
    "TemplateError",
    "TokenEvent",
    "TokenStream",
    "make_chain",
]
