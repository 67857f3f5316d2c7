"""Исключения learning_chain."""


class LearningChainError(Exception):
    """Базовое исключение пакета."""


class EmptyModelListError(LearningChainError, ValueError):
    """Список моделей пуст, выбрать модель невозможно."""


class TemplateError(LearningChainError):
    """Шаблон промпта не найден или в нём нет обязательных полей."""


class StreamingDisabledError(LearningChainError):
    """Потоковый ответ запрошен у цепочки, собранной без streaming."""
