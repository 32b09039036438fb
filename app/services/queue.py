"""
app/services/queue.py

Fila compartilhada entre o webhook (produtor) e os workers (consumidores).
Contém eventos já decodificados (TextMessage ou ButtonPress).
"""

import asyncio

update_queue: asyncio.Queue = asyncio.Queue()
