"""Extraction prompts sent to the AI backends.

The same text is used for manual mode, where the user pastes it into a chat
UI and hands the reply back to :func:`~kakeibo.scanner.ai.parser.parse_response`.
"""

from __future__ import annotations

SUSPENSE_PAYABLE = "仮払金"
SUSPENSE_RECEIVABLE = "仮受金"

# (勘定科目, キーワード, 金額条件)。金額条件は税込金額の範囲 (下限, 上限)
KAMOKU_RULES: list[tuple[str, list[str], tuple[int | None, int | None]]] = [
    ("旅費交通費", ["JR", "電車", "バス", "タクシー", "Suica", "PASMO", "高速道路", "ETC", "駐車場", "航空"], (None, None)),
    ("通信費", ["NTT", "docomo", "ドコモ", "au", "KDDI", "ソフトバンク", "楽天モバイル", "郵便", "切手"], (None, None)),
    ("水道光熱費", ["電力", "電気", "ガス", "水道"], (None, None)),
    ("会議費", ["カフェ", "スターバックス", "ドトール", "喫茶"], (None, 4999)),
    ("接待交際費", ["居酒屋", "レストラン", "寿司", "焼肉", "料亭", "ギフト"], (5000, None)),
    ("消耗品費", ["Amazon", "アスクル", "文具", "ホームセンター", "ヨドバシ", "ビックカメラ", "100円ショップ", "ダイソー"], (None, 99999)),
    ("新聞図書費", ["書店", "ブックス", "新聞", "Kindle"], (None, None)),
    ("支払手数料", ["振込手数料", "手数料"], (None, None)),
    ("地代家賃", ["家賃", "賃料", "不動産"], (None, None)),
    ("保険料", ["保険"], (None, None)),
    ("租税公課", ["税務署", "市役所", "区役所", "印紙", "収入印紙"], (None, None)),
    ("広告宣伝費", ["Google広告", "Meta", "広告"], (None, None)),
]

_BASE_PROMPT = """\
You are an expert accountant AI. Analyze this document (image or PDF) of a bank book, \
receipt, or credit card statement and extract every transaction.

1. **Date**
   - Output YYYY/MM/DD.
   - Convert Japanese eras: 令和/R (R1=2019 ... R7=2025), 平成/H (H30=2018, H31=2019).
   - If the year is missing, look for a year printed elsewhere on the document; \
only if none exists, assume the current year.

2. **Description (摘要)**
   - Receipts (領収書・レシート): the STORE NAME printed at the top, e.g. "セブンイレブン", \
"スターバックス コーヒー". Never a product name. No address, phone number or branch.
   - Bank / credit card statements: the payee or merchant exactly as printed.

3. **Amount & Type**
   - amount is always a positive number; the direction goes in type.
   - Credit card statements: almost everything is "expense"; only explicit refunds \
(返金) are "income".
   - Bank books: 支払金額/出金/お支払い columns are "expense"; 預り金額/入金/お預り are \
"income". Use the header row and column alignment to tell them apart.
   - Receipts: always "expense". Use the final total (合計, 領収金額, お会計), never \
小計, 消費税 or お釣り. "1,000" means 1000.

{kamoku_section}

5. **Invoice Status (インボイス区分)**
   - Receipts/invoices: "適格" if a registration number "T" + 13 digits is printed, \
otherwise "非適格".
   - Bank / credit card statements: null.

6. **Tax Category (税区分)**
   - "課税仕入 10%" (default for expenses), "課税仕入 (軽)8%" (food and drink, 軽減税率 marks \
such as ※ or 軽), "対象外仕入" (stamps, government fees), "非課税仕入" (insurance, \
some medical), "課税売上 10%" (default for income), "課税売上 (軽)8%".

**OUTPUT FORMAT**: Return ONLY a JSON array. No markdown, no code fences, no explanation.
[
  {{"date": "2024/01/15", "description": "セブンイレブン", "amount": 1000, "type": "expense", \
"kamoku": {example_kamoku}, "subKamoku": null, "invoiceNumber": "適格", "taxCategory": "課税仕入 (軽)8%"}},
  {{"date": "2024/01/20", "description": "売上入金", "amount": 50000, "type": "income", \
"kamoku": {example_income_kamoku}, "subKamoku": null, "invoiceNumber": null, "taxCategory": "課税売上 10%"}}
]
If the document contains no transactions, return [].
"""

_NO_GUESS_SECTION = """\
4. **Account Item (勘定科目) / Sub-Account Item (補助科目)**
   - STRICT RULE: return null for "kamoku" and "subKamoku" on ALL transactions.
   - Do not guess the account item; the application assigns it."""

_GUESS_SECTION_HEAD = """\
4. **Account Item (勘定科目)**
   - Guess "kamoku" for each transaction using the first matching rule below \
(keyword in the description; amount limits apply to the tax-included amount).
   - "subKamoku" is always null."""


def _describe_amount_limit(limit: tuple[int | None, int | None]) -> str:
    low, high = limit
    if low is not None and high is not None:
        return f" (amount {low:,}〜{high:,})"
    if low is not None:
        return f" (amount {low:,} or more)"
    if high is not None:
        return f" (amount up to {high:,})"
    return ""


def _build_kamoku_section() -> str:
    lines = [_GUESS_SECTION_HEAD]
    for kamoku, keywords, limit in KAMOKU_RULES:
        lines.append(
            f"     - {kamoku}: {', '.join(keywords)}{_describe_amount_limit(limit)}"
        )
    lines.append(
        f'   - If no rule matches, use "{SUSPENSE_PAYABLE}" for expense and '
        f'"{SUSPENSE_RECEIVABLE}" for income. Never invent other account names.'
    )
    return "\n".join(lines)


def build_analysis_prompt(auto_kamoku: bool = False) -> str:
    """Return the extraction instruction.

    With ``auto_kamoku`` the prompt carries the keyword taxonomy for account
    guessing; without it the model must leave every account field null.
    """
    if auto_kamoku:
        return _BASE_PROMPT.format(
            kamoku_section=_build_kamoku_section(),
            example_kamoku=f'"{SUSPENSE_PAYABLE}"',
            example_income_kamoku=f'"{SUSPENSE_RECEIVABLE}"',
        )
    return _BASE_PROMPT.format(
        kamoku_section=_NO_GUESS_SECTION,
        example_kamoku="null",
        example_income_kamoku="null",
    )
