from datetime import datetime

from app.models.schemas import (
    Action,
    FlexReply,
    RecordKind,
    Reply,
    Summary,
    TemplateColumn,
    TemplateReply,
    TextReply,
)

KIND_LABELS = {
    RecordKind.EXPENSE: "支出",
    RecordKind.INCOME: "收入",
    RecordKind.ASSET: "資產",
    RecordKind.DEBT: "負債",
}

USAGE_TEXT = (
    "您可以：\n"
    "• 直接輸入「項目 金額」記錄支出\n"
    "• 例如：午餐 120\n"
    "• 輸入「收入 項目 金額」記錄收入\n"
    "• 輸入「資產 項目 金額」更新資產或負債\n"
    "• 輸入「報表」查看本月統計\n"
    "• 輸入「設定」進行個人設定"
)


class ReplyBuilder:
    """Canned chat replies, parameterised by deployment settings."""

    def __init__(self, currency_label: str = "NT$", report_url: str = ""):
        self.currency_label = currency_label
        self.report_url = report_url

    def format_amount(self, amount: int) -> str:
        return f"{self.currency_label} {amount:,}"

    # Onboarding

    def welcome(self, display_name: str | None = None) -> TextReply:
        greeting = f"{display_name}，歡迎使用記帳小豆腐！🧾" if display_name else "歡迎使用記帳小豆腐！🧾"
        return TextReply(text=f"{greeting}\n\n輸入「記帳」開始使用。")

    def disclaimer(self) -> TemplateReply:
        return TemplateReply(
            alt_text="使用聲明",
            layout="confirm",
            columns=[
                TemplateColumn(
                    text=(
                        "本服務僅提供個人記帳參考，不構成任何財務建議，"
                        "您的記帳資料將儲存於本服務中。是否同意以上聲明？"
                    ),
                    actions=[
                        Action(label="同意", data="disclaimer_accept"),
                        Action(label="不同意", data="disclaimer_decline"),
                    ],
                )
            ],
        )

    def farewell(self) -> TextReply:
        return TextReply(text="了解，期待下次為您服務！\n如需使用請再輸入「記帳」。")

    def setup_prompt(self) -> TextReply:
        return TextReply(
            text=(
                "感謝您的同意！接下來請設定目前的資產與負債：\n"
                "• 格式：項目 金額\n"
                "• 例如：台新 50000、信用卡 15000\n\n"
                "設定完成後請輸入「完成設定」"
            )
        )

    def setup_format_reminder(self) -> TextReply:
        return TextReply(
            text=(
                "請輸入正確格式：\n"
                "• 項目 金額（例如：台新 50000）\n"
                "• 或輸入「完成設定」結束初始設定"
            )
        )

    def setup_complete(self) -> TextReply:
        return TextReply(text=f"🎉 初始設定完成！\n\n{USAGE_TEXT}")

    def usage(self) -> TextReply:
        return TextReply(text=f"歡迎使用記帳小豆腐！🧾\n\n{USAGE_TEXT}")

    def help(self) -> TextReply:
        return TextReply(
            text=(
                "請輸入正確格式：\n"
                "• 項目 金額（例如：午餐 120）\n"
                "• 或輸入「記帳」查看使用說明"
            )
        )

    # Records and reports

    def record_confirmation(
        self, category: str, amount: int, kind: RecordKind, when: datetime
    ) -> TextReply:
        return TextReply(
            text=(
                "✅ 記錄成功！\n\n"
                f"類型：{KIND_LABELS[kind]}\n"
                f"項目：{category}\n"
                f"金額：{self.format_amount(amount)}\n"
                f"時間：{when:%Y/%m/%d %H:%M}\n\n"
                "輸入「報表」查看統計"
            )
        )

    def report(self, summary: Summary) -> TextReply:
        text = (
            "📊 本月記帳報表\n\n"
            f"💰 總收入：{self.format_amount(summary.total_income)}\n"
            f"💸 總支出：{self.format_amount(summary.total_expense)}\n"
            f"💳 未知支出：{self.format_amount(summary.unknown_expense)}\n"
            f"💎 淨資產：{self.format_amount(summary.net_asset)}"
        )
        if self.report_url:
            text += f"\n\n詳細報表請查看：{self.report_url}"
        return TextReply(text=text)

    def unknown_expense(self, summary: Summary) -> TextReply:
        return TextReply(
            text=(
                f"💳 本月未知支出：{self.format_amount(summary.unknown_expense)}\n"
                "（本月收入扣除已記錄支出後的差額）"
            )
        )

    def expense_breakdown(self, summary: Summary) -> Reply:
        if not summary.expense_by_category:
            return TextReply(text="本月尚無支出記錄。")

        rows = [
            {
                "type": "box",
                "layout": "horizontal",
                "contents": [
                    {"type": "text", "text": category, "flex": 3},
                    {
                        "type": "text",
                        "text": self.format_amount(amount),
                        "flex": 2,
                        "align": "end",
                    },
                ],
            }
            for category, amount in sorted(
                summary.expense_by_category.items(), key=lambda item: -item[1]
            )
        ]
        return FlexReply(
            alt_text=f"本月支出統計：{self.format_amount(summary.total_expense)}",
            contents={
                "type": "bubble",
                "body": {
                    "type": "box",
                    "layout": "vertical",
                    "contents": [
                        {"type": "text", "text": "💸 本月支出統計", "weight": "bold"},
                        {"type": "separator", "margin": "md"},
                        *rows,
                        {"type": "separator", "margin": "md"},
                        {
                            "type": "text",
                            "text": f"合計 {self.format_amount(summary.total_expense)}",
                            "align": "end",
                            "weight": "bold",
                        },
                    ],
                },
            },
        )

    # Menus and prompts

    def income_prompt(self) -> TextReply:
        return TextReply(
            text="請輸入收入金額：\n格式：收入 項目 金額\n例如：收入 薪資 45000"
        )

    def asset_prompt(self) -> TextReply:
        return TextReply(
            text=(
                "請更新資產或負債：\n"
                "格式：資產 項目 金額\n"
                "例如：資產 台新 50000、資產 信用卡 15000"
            )
        )

    def settings_menu(self) -> TemplateReply:
        return TemplateReply(
            alt_text="設定選單",
            columns=[
                TemplateColumn(
                    title="個人設定",
                    text="請選擇要設定的項目",
                    actions=[
                        Action(label="銀行帳戶設定", data="setting_bank"),
                        Action(label="提醒時間設定", data="setting_reminder"),
                        Action(label="分類設定", data="setting_category"),
                    ],
                )
            ],
        )

    def monthly_reminder(self) -> TemplateReply:
        report_action = (
            Action(label="查看報表", uri=self.report_url)
            if self.report_url
            else Action(label="支出統計", data="expense_summary")
        )
        return TemplateReply(
            alt_text="每月記帳提醒 - 記帳小豆腐",
            layout="carousel",
            columns=[
                TemplateColumn(
                    title="📊 每月記帳提醒",
                    text="該記錄本月收入和資產了！",
                    actions=[
                        Action(label="記錄收入", data="monthly_income"),
                        Action(label="更新資產", data="monthly_assets"),
                        report_action,
                    ],
                ),
                TemplateColumn(
                    title="💰 本月統計",
                    text="快速查看本月記帳狀況",
                    actions=[
                        Action(label="支出統計", data="expense_summary"),
                        Action(label="未知支出", data="unknown_expense"),
                        Action(label="設定提醒", data="setting_reminder"),
                    ],
                ),
            ],
        )

    def in_development(self) -> TextReply:
        return TextReply(text="功能開發中，敬請期待！")

    def persistence_error(self) -> TextReply:
        return TextReply(text="系統忙碌中，記錄未儲存，請稍後再試一次。")
