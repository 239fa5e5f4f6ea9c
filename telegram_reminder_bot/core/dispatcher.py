from __future__ import annotations

from aiogram import Dispatcher, Router


def create_dispatcher(*routers: Router) -> Dispatcher:
    dp = Dispatcher()
    for router in routers:
        dp.include_router(router)
    return dp
