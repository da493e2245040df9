"""
Общий код между компонентами.

Модули:
- events: конверты событий RabbitMQ
- models: общие Pydantic-модели
- rooms: грамматика ключей комнат realtime gateway
"""

__all__: list[str] = []
