# src/common/localization.py
"""
Тексты push-уведомлений.
Шаблоны хранятся в config/lang_dict.json: ключ -> {язык: шаблон}.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

FALLBACK_LANGUAGE = "en"


def get_lang_dict_path() -> Path:
    """Возвращает путь к файлу шаблонов."""
    return Path(__file__).parent.parent.parent / "config" / "lang_dict.json"


@lru_cache()
def load_lang_dict() -> dict[str, dict[str, str]]:
    """
    Загружает шаблоны уведомлений (с кэшированием).

    Raises:
        FileNotFoundError: если файл шаблонов отсутствует
    """
    lang_path = get_lang_dict_path()
    if not lang_path.exists():
        raise FileNotFoundError(f"Файл шаблонов не найден: {lang_path}")

    with open(lang_path, "r", encoding="utf-8") as f:
        return json.load(f)


def get_text(
    key: str,
    lang: str = FALLBACK_LANGUAGE,
    default: str | None = None,
    **kwargs: Any,
) -> str:
    """
    Возвращает текст шаблона на нужном языке.

    Если перевода нет — берётся английский, затем любой доступный.
    Неизвестный ключ превращается в "[KEY]".

    Example:
        >>> get_text("OFFER_ISSUED_TITLE", "en")
        "New booking request"
    """
    try:
        lang_dict = load_lang_dict()
    except FileNotFoundError:
        return default or f"[{key}]"

    translations = lang_dict.get(key)
    if not translations:
        return default or f"[{key}]"

    text = translations.get(lang) or translations.get(FALLBACK_LANGUAGE)
    if not text:
        text = next(iter(translations.values()), f"[{key}]")

    if kwargs:
        try:
            text = text.format(**kwargs)
        except KeyError:
            pass  # недостающие параметры оставляем как есть

    return text


def validate_lang_dict() -> list[str]:
    """
    Проверяет, что у каждого ключа есть английский шаблон.

    Returns:
        Список ошибок (пустой, если всё в порядке)
    """
    try:
        lang_dict = load_lang_dict()
    except FileNotFoundError as e:
        return [str(e)]

    errors = []
    for key, translations in lang_dict.items():
        if not isinstance(translations, dict):
            errors.append(f"Ключ '{key}' имеет неверный формат")
        elif FALLBACK_LANGUAGE not in translations:
            errors.append(f"Ключ '{key}' не имеет шаблона '{FALLBACK_LANGUAGE}'")
    return errors
