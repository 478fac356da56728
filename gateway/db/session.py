import asyncio

import httpx
from fastapi import Request

from gateway.core.config import Settings
from gateway.db.supabase import DocumentStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_store(request: Request) -> DocumentStore:
    state = request.app.state
    if state.store is not None:
        return state.store
    # One client per app, even when the first requests arrive together.
    async with state.store_lock:
        if state.store is None:
            state.store = await DocumentStore.connect(state.settings)
    return state.store


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client
