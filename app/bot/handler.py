from loguru import logger
from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from app.bot.controller import ConversationController
from app.errors import PersistenceFailure
from app.models.schemas import (
    Action,
    FlexReply,
    FollowEvent,
    InboundEvent,
    MessageEvent,
    PostbackEvent,
    Reply,
    TemplateReply,
    TextReply,
)


def _button(action: Action) -> InlineKeyboardButton:
    if action.uri is not None:
        return InlineKeyboardButton(action.label, url=action.uri)
    return InlineKeyboardButton(action.label, callback_data=action.data or "")


def render_reply(reply: Reply) -> list[tuple[str, InlineKeyboardMarkup | None]]:
    """Turn one reply into Telegram (text, keyboard) messages.

    Telegram has no template or flex messages: each template column becomes a
    message with an inline keyboard, and flex bubbles fall back to their alt text.
    """
    if isinstance(reply, TextReply):
        return [(reply.text, None)]

    if isinstance(reply, TemplateReply):
        messages = []
        for column in reply.columns:
            text = f"{column.title}\n{column.text}" if column.title else column.text
            if reply.layout == "confirm":
                rows = [[_button(a) for a in column.actions]]
            else:
                rows = [[_button(a)] for a in column.actions]
            messages.append((text, InlineKeyboardMarkup(rows) if column.actions else None))
        return messages

    if isinstance(reply, FlexReply):
        return [(reply.alt_text, None)]

    raise TypeError(f"Unsupported reply: {type(reply).__name__}")


async def send_replies(bot: Bot, chat_id: int | str, replies: list[Reply]) -> None:
    for reply in replies:
        for text, markup in render_reply(reply):
            await bot.send_message(chat_id=chat_id, text=text, reply_markup=markup)


async def _dispatch(
    update: Update, context: ContextTypes.DEFAULT_TYPE, *events: InboundEvent
) -> None:
    controller: ConversationController = context.bot_data["controller"]
    replies: list[Reply] = []
    for event in events:
        replies.extend(controller.handle(event, channel="telegram"))
    await send_replies(context.bot, update.effective_chat.id, replies)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start, Telegram's first-contact and start command in one.

    A user seen for the first time gets the welcome before the start reply.
    """
    user = update.effective_user
    external_id = str(user.id)
    controller: ConversationController = context.bot_data["controller"]

    try:
        known = controller.repo.get_user_by_external_id(external_id) is not None
    except PersistenceFailure:
        # the start event below reports the failure to the user
        known = True

    events: list[InboundEvent] = []
    if not known:
        events.append(FollowEvent(user_id=external_id, display_name=user.first_name))
    events.append(
        MessageEvent(user_id=external_id, text="/start", display_name=user.first_name)
    )
    await _dispatch(update, context, *events)


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user = update.effective_user
    logger.info("Telegram message from {}: {}", user.id, update.message.text)
    await _dispatch(
        update,
        context,
        MessageEvent(
            user_id=str(user.id), text=update.message.text, display_name=user.first_name
        ),
    )


async def handle_button(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle inline keyboard presses as postbacks."""
    query = update.callback_query
    await query.answer()
    # Drop the keyboard so the same button cannot be pressed twice
    await query.edit_message_reply_markup(reply_markup=None)

    user = update.effective_user
    await _dispatch(
        update,
        context,
        PostbackEvent(
            user_id=str(user.id), data=query.data or "", display_name=user.first_name
        ),
    )


def build_bot_app(token: str, controller: ConversationController) -> Application:
    """Build and return the Telegram bot application."""
    app = Application.builder().token(token).build()
    app.bot_data["controller"] = controller

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CallbackQueryHandler(handle_button))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))

    return app
