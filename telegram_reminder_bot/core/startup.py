from __future__ import annotations

from dotenv import load_dotenv

from ..config import load_config
from .application import Application


async def create_application() -> Application:
    load_dotenv()
    config = load_config()
    return Application(config=config)
