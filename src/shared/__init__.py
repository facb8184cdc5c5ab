# src/shared/__init__.py
"""
Общий код ядра диспетчеризации.

Модули:
- events: доменные события (pydantic), публикуемые в шину и в RabbitMQ
"""

__all__: list[str] = []
