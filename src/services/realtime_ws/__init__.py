# src/services/realtime_ws/__init__.py
"""
Realtime WebSocket Gateway — push-уведомления по комнатам.

Обеспечивает:
- WebSocket соединения с авторизацией первым кадром
- Комнаты user:<id>, restaurant:<id>, order:<id>
- Внутренний endpoint публикации для консьюмеров
- Межэкземплярную доставку через Redis Pub/Sub
"""
