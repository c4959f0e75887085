from fastapi import Request

from app.bot.controller import ConversationController
from app.bot.line import LineMessagingClient
from app.config import Settings
from app.db.repository import LedgerRepository


# Objects are built once by create_app() and live on app.state


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repo(request: Request) -> LedgerRepository:
    return request.app.state.repo


def get_controller(request: Request) -> ConversationController:
    return request.app.state.controller


def get_line_client(request: Request) -> LineMessagingClient | None:
    return request.app.state.line
