"""CLI entry point for the scanner module."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import mimetypes
import sys
from pathlib import Path

from dotenv import load_dotenv

from .ai import AnalysisError, build_analysis_prompt, create_backend, parse_response
from .config import PDF_MODES, ScannerConfig, load_config
from .duplicates import duplicate_ids, find_duplicates
from .learning import load_rules_file
from .models import BOOK_TYPES, MultiPageProgress, ScanResult, Transaction
from .multipage import scan_document
from .normalizer import normalize_transactions
from .retry import RetryPolicy


def main(argv: list[str] | None = None) -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="kakeibo-scan",
        description="AI帳簿スキャナ: レシート・通帳・カード明細から取引を抽出します",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="設定ファイルのパス (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="詳細ログを表示",
    )

    sub = parser.add_subparsers(dest="command")

    # scan
    scan_parser = sub.add_parser("scan", help="書類をAIで解析して取引を抽出")
    scan_parser.add_argument("file", type=str, help="画像またはPDFファイル")
    scan_parser.add_argument("--json", action="store_true", help="JSON形式で出力")
    scan_parser.add_argument(
        "--book-type", choices=BOOK_TYPES, default=None, help="元帳種別",
    )
    scan_parser.add_argument(
        "--auto-kamoku", action="store_true", default=None,
        help="AIに勘定科目を推測させる",
    )
    scan_parser.add_argument(
        "--pdf-mode", choices=PDF_MODES, default=None,
        help="split: ページごとに解析 / single: PDF全体を1回で解析",
    )
    scan_parser.add_argument(
        "--rules", type=str, default=None, metavar="FILE",
        help="学習ルールのJSONファイル",
    )
    scan_parser.add_argument(
        "--client", type=str, default="", help="学習ルールを参照する顧問先名",
    )

    # prompt
    prompt_parser = sub.add_parser(
        "prompt", help="手動モード用のプロンプトを表示 (ChatGPT / Claude Web に貼り付け)"
    )
    prompt_parser.add_argument(
        "--auto-kamoku", action="store_true", help="勘定科目の推測ルールを含める",
    )

    # parse
    parse_parser = sub.add_parser("parse", help="手動モードでAIの回答を検証・取り込み")
    parse_parser.add_argument(
        "file", type=str, help="AIの回答を保存したファイル (- で標準入力)",
    )
    parse_parser.add_argument("--json", action="store_true", help="JSON形式で出力")
    parse_parser.add_argument(
        "--rules", type=str, default=None, metavar="FILE",
        help="学習ルールのJSONファイル",
    )
    parse_parser.add_argument(
        "--client", type=str, default="", help="学習ルールを参照する顧問先名",
    )

    # models
    sub.add_parser("models", help="利用可能なAIモデル一覧を表示")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)

    match args.command:
        case "scan":
            asyncio.run(_cmd_scan(config, args))
        case "prompt":
            print(build_analysis_prompt(auto_kamoku=args.auto_kamoku))
        case "parse":
            _cmd_parse(config, args)
        case "models":
            _cmd_models(config)


def _cmd_models(config: ScannerConfig) -> None:
    from .ai.claude import CLAUDE_MODELS
    from .ai.gemini import GEMINI_MODELS

    current = {"gemini": config.ai.gemini.model, "claude": config.ai.claude.model}
    for backend, models in (("gemini", GEMINI_MODELS), ("claude", CLAUDE_MODELS)):
        print(f"{backend}:")
        for model_id, label in models:
            mark = " *" if model_id == current[backend] else ""
            print(f"  {model_id:<30} {label}{mark}")


def _print_progress(progress: MultiPageProgress) -> None:
    print(f"  {progress.message}", file=sys.stderr)


async def _cmd_scan(config: ScannerConfig, args) -> None:
    path = Path(args.file)
    if not path.exists():
        print(f"ファイルが見つかりません: {path}", file=sys.stderr)
        sys.exit(1)
    mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"

    overrides = {}
    if args.book_type is not None:
        overrides["book_type"] = args.book_type
    if args.auto_kamoku is not None:
        overrides["auto_kamoku"] = args.auto_kamoku
    if args.pdf_mode is not None:
        overrides["pdf_mode"] = args.pdf_mode
    options = dataclasses.replace(config.scan, **overrides)

    try:
        backend = create_backend(config)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)

    rules = load_rules_file(args.rules, args.client) if args.rules else {}
    policy = RetryPolicy(
        max_attempts=config.retry.max_attempts,
        base_delay=config.retry.base_delay,
    )

    print(f"🔍 {path.name} を解析中... ({backend.name} / {backend.model})", file=sys.stderr)
    try:
        result = await scan_document(
            path.read_bytes(),
            mime_type,
            backend,
            options=options,
            learning_rules=rules,
            policy=policy,
            on_progress=_print_progress,
        )
    except AnalysisError as e:
        print(f"解析エラー [{e.code}]: {e.message}", file=sys.stderr)
        sys.exit(1)
    except RuntimeError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)

    _output(result.transactions, as_json=args.json, result=result)


def _cmd_parse(config: ScannerConfig, args) -> None:
    if args.file == "-":
        text = sys.stdin.read()
    else:
        text = Path(args.file).read_text(encoding="utf-8")

    try:
        raw = parse_response(text)
    except AnalysisError as e:
        print(f"検証エラー: {e.message}", file=sys.stderr)
        sys.exit(1)

    rules = load_rules_file(args.rules, args.client) if args.rules else {}
    transactions = normalize_transactions(
        raw,
        learning_rules=rules,
        book_type=config.scan.book_type,
        auto_kamoku=config.scan.auto_kamoku,
    )
    _output(transactions, as_json=args.json)


def _output(
    transactions: list[Transaction],
    *,
    as_json: bool,
    result: ScanResult | None = None,
) -> None:
    groups = find_duplicates(transactions)
    flagged = duplicate_ids(groups)

    if as_json:
        data: dict = {
            "transactions": [t.to_dict() for t in transactions],
            "duplicates": [
                {"id": g.anchor_id, "matchingIds": g.matching_ids} for g in groups
            ],
        }
        if result is not None:
            data["isMultiPage"] = result.is_multi_page
            data["pages"] = [
                {
                    "pageNumber": p.page_number,
                    "count": len(p.transactions),
                    "error": p.error,
                }
                for p in result.pages
            ]
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    if not transactions:
        print("取引が検出されませんでした。")
    else:
        print(f"\n🧾 抽出された取引 ({len(transactions)} 件):")
        for t in transactions:
            mark = "⚠" if t.id in flagged else " "
            account = t.kamoku or ""
            if t.sub_kamoku:
                account = f"{account}/{t.sub_kamoku}"
            print(
                f" {mark} {t.date}  {t.description:<20} {t.amount:>10,}  "
                f"{account}  {t.tax_category or ''}"
            )

    if groups:
        print(f"\n⚠ {len(groups)}件の重複の可能性がある取引があります。")
    if result is not None:
        for page in result.failed_pages:
            print(f"  ページ {page.page_number}: {page.error}", file=sys.stderr)
        print(result.summary())


if __name__ == "__main__":
    main()
