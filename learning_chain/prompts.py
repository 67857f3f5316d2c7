#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Шаблоны промптов.

Тексты лежат в ``templates/<версия>/*.txt`` и версионируются отдельно от кода.
Поля проекта в шаблоне ответа записаны как ``${name}`` и подставляются один раз
при сборке цепочки; поля ``{query_str}`` и ``{context_str}`` заполняет LlamaIndex
на каждом запросе.
"""
import re
from importlib import resources
from string import Template

from llama_index.core import PromptTemplate

from .config import ProjectContext
from .exceptions import TemplateError

DEFAULT_TEMPLATE_VERSION = "v1"

QA_REQUIRED_FIELDS = ("{query_str}", "{context_str}")
RUNTIME_FIELD_RE = re.compile(r"\{(query_str|context_str)\}")


def load_template(name: str, version: str = DEFAULT_TEMPLATE_VERSION) -> str:
    """Читает текст шаблона ``name`` указанной версии из данных пакета."""
    path = resources.files(__package__) / "templates" / version / f"{name}.txt"
    if not path.is_file():
        raise TemplateError(f"Prompt template '{name}' not found for version '{version}'")
    return path.read_text(encoding="utf-8").rstrip("\n")


def make_condense_prompt(version: str = DEFAULT_TEMPLATE_VERSION) -> PromptTemplate:
    """Промпт переписывания вопроса: поля {chat_history} и {question}."""
    return PromptTemplate(load_template("condense", version))


def _shield_runtime_fields(value: str) -> str:
    """Разрывает {query_str}/{context_str} в пользовательском тексте, чтобы LlamaIndex
    не подставил туда вопрос или контекст на каждом запросе."""
    return RUNTIME_FIELD_RE.sub(lambda m: "{ " + m.group(1) + " }", value)


def render_extra_instructions(project: ProjectContext, version: str = DEFAULT_TEMPLATE_VERSION) -> str:
    if not project.chat_prompt:
        return ""
    return Template(load_template("extra_instructions", version)).substitute(
        content_type=_shield_runtime_fields(project.content_type),
        chat_prompt=_shield_runtime_fields(project.chat_prompt),
    )


def render_qa_template(project: ProjectContext, version: str = DEFAULT_TEMPLATE_VERSION) -> str:
    """Собирает текст промпта ответа для конкретного проекта.

    Детерминированно: одинаковый ProjectContext даёт одинаковый текст.
    Подставленные значения повторно не разбираются, поэтому ``$`` в
    инструкциях пользователя безопасен. Обычные ``{...}`` LlamaIndex оставляет
    как есть, а ``{query_str}``/``{context_str}`` из пользовательского текста
    превращаются в ``{ query_str }``/``{ context_str }``.
    """
    raw = load_template("qa", version)
    missing = [f for f in QA_REQUIRED_FIELDS if f not in raw]
    if missing:
        raise TemplateError(f"QA template '{version}' lacks required fields: {', '.join(missing)}")
    return Template(raw).substitute(
        project_name=_shield_runtime_fields(project.project_name),
        repository_url=_shield_runtime_fields(project.repository_url),
        content_type=_shield_runtime_fields(project.content_type),
        target_audience=_shield_runtime_fields(project.target_audience),
        extra_instructions=render_extra_instructions(project, version),
    )


def make_qa_prompt(project: ProjectContext, version: str = DEFAULT_TEMPLATE_VERSION) -> PromptTemplate:
    return PromptTemplate(render_qa_template(project, version))
