import re
from collections.abc import Callable
from datetime import datetime

from loguru import logger

from app.bot.replies import ReplyBuilder
from app.db.repository import LedgerRepository
from app.errors import PersistenceFailure
from app.ledger.aggregator import build_report
from app.ledger.classifier import ClassificationContext, classify
from app.ledger.parser import parse_record
from app.models.schemas import (
    ConversationState,
    FinancialRecord,
    FollowEvent,
    InboundEvent,
    MessageEvent,
    PostbackEvent,
    RecordKind,
    Reply,
    Summary,
    UserState,
)

START_COMMANDS = {"記帳", "開始記帳", "/start"}
REPORT_COMMAND = "報表"
SETTINGS_COMMAND = "設定"
FINISH_SETUP_COMMAND = "完成設定"

# "收入 薪資 45000" logs income, "資產 台新 50000" updates a balance; the verb
# may be followed by any separator the record parser accepts
RECORD_COMMAND = re.compile(r"^(收入|資產)[\s+：$]+(.*)$")

ACCEPT_DISCLAIMER = "disclaimer_accept"
DECLINE_DISCLAIMER = "disclaimer_decline"
INCOME_POSTBACKS = ("income_", "monthly_income")
ASSET_POSTBACKS = ("asset_", "debt_", "monthly_assets")


class ConversationController:
    """Routes one inbound chat event to a batch of replies.

    Holds no per-user state of its own: the user's position in the onboarding
    flow is read from and written back to the repository on every event.
    """

    def __init__(
        self,
        repo: LedgerRepository,
        replies: ReplyBuilder,
        baseline: int = 0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repo = repo
        self.replies = replies
        self.baseline = baseline
        self.clock = clock

    def handle(self, event: InboundEvent, channel: str = "line") -> list[Reply]:
        try:
            user = self.repo.get_or_create_user(
                event.user_id, event.display_name, channel=channel
            )
            if isinstance(event, FollowEvent):
                logger.info("Follow from {}", event.user_id)
                return [self.replies.welcome(user.display_name)]
            if isinstance(event, MessageEvent):
                return self._on_message(user, event.text.strip())
            if isinstance(event, PostbackEvent):
                return self._on_postback(user, event.data)
            raise TypeError(f"Unsupported event: {type(event).__name__}")
        except PersistenceFailure as e:
            logger.warning("Could not handle event from {}: {}", event.user_id, e)
            return [self.replies.persistence_error()]

    # Messages

    def _on_message(self, user: UserState, text: str) -> list[Reply]:
        logger.info("Message from user #{} ({}): {}", user.id, user.state.value, text)

        if text in START_COMMANDS:
            return self._start(user)

        if user.state is ConversationState.AWAITING_INITIAL_SETUP:
            return self._on_setup_message(user, text)
        if user.state is ConversationState.ACTIVE:
            return self._on_active_message(user, text)
        return [self.replies.help()]

    def _start(self, user: UserState) -> list[Reply]:
        if not user.disclaimer_accepted:
            self.repo.update_user(user.id, state=ConversationState.AWAITING_DISCLAIMER)
            return [self.replies.disclaimer()]
        if user.state is ConversationState.AWAITING_INITIAL_SETUP:
            return [self.replies.setup_prompt()]
        return [self.replies.usage()]

    def _on_setup_message(self, user: UserState, text: str) -> list[Reply]:
        if text == FINISH_SETUP_COMMAND:
            self.repo.update_user(
                user.id, state=ConversationState.ACTIVE, setup_completed=True
            )
            logger.info("User #{} finished initial setup", user.id)
            return [self.replies.setup_complete()]

        record = parse_record(text)
        if record is None:
            return [self.replies.setup_format_reminder()]
        kind = classify(record.category, ClassificationContext.ASSET)
        return [self._save(user, record, kind)]

    def _on_active_message(self, user: UserState, text: str) -> list[Reply]:
        if text == REPORT_COMMAND:
            return [self.replies.report(self._monthly_summary(user))]
        if text == SETTINGS_COMMAND:
            return [self.replies.settings_menu()]

        command = RECORD_COMMAND.match(text)
        if command is not None:
            verb, rest = command.groups()
            # "收入 45000" has no label of its own, so the verb becomes the label
            record = parse_record(rest) or parse_record(text)
            if record is None:
                return [self.replies.help()]
            if verb == "收入":
                kind = RecordKind.INCOME
            else:
                kind = classify(record.category, ClassificationContext.ASSET)
            return [self._save(user, record, kind)]

        record = parse_record(text)
        if record is None:
            return [self.replies.help()]
        kind = classify(record.category, ClassificationContext.EXPENSE)
        return [self._save(user, record, kind)]

    def _save(self, user: UserState, record: FinancialRecord, kind: RecordKind) -> Reply:
        now = self.clock()
        self.repo.insert_record(
            user.id, record.category, record.amount, kind, recorded_at=now.date()
        )
        return self.replies.record_confirmation(record.category, record.amount, kind, now)

    def _monthly_summary(self, user: UserState) -> Summary:
        records = self.repo.list_records(user.id)
        report = build_report(
            records, "monthly", today=self.clock().date(), baseline=self.baseline
        )
        return report.summary

    # Postbacks

    def _on_postback(self, user: UserState, data: str) -> list[Reply]:
        logger.info("Postback from user #{} ({}): {}", user.id, user.state.value, data)

        if data == ACCEPT_DISCLAIMER:
            if user.disclaimer_accepted:
                return self._start(user)
            self.repo.update_user(
                user.id,
                disclaimer_accepted=True,
                state=ConversationState.AWAITING_INITIAL_SETUP,
            )
            return [self.replies.setup_prompt()]
        if data == DECLINE_DISCLAIMER:
            return [self.replies.farewell()]

        if user.state is not ConversationState.ACTIVE:
            return [self.replies.help()]

        if data.startswith(INCOME_POSTBACKS):
            return [self.replies.income_prompt()]
        if data.startswith(ASSET_POSTBACKS):
            return [self.replies.asset_prompt()]
        if data == "expense_summary":
            return [self.replies.expense_breakdown(self._monthly_summary(user))]
        if data == "unknown_expense":
            return [self.replies.unknown_expense(self._monthly_summary(user))]
        return [self.replies.in_development()]
