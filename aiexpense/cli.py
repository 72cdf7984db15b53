# -*- coding: utf-8 -*-
"""Local CLI.

Sends messages through the same gateway the webhooks use, as the terminal
channel, and inspects what was stored.

    python -m aiexpense.cli init-db
    python -m aiexpense.cli chat --user-id me --text "lunch $120 taxi $250"
    python -m aiexpense.cli expenses --user-id me
    python -m aiexpense.cli edit --user-id me --expense-id exp_... --category Transport
    python -m aiexpense.cli delete --user-id me --expense-id exp_...
    python -m aiexpense.cli costs --user-id me
"""

import argparse
import json
import sys
from datetime import date, datetime, timezone
from typing import Any, Optional

from aiexpense.config import load_settings
from aiexpense.errors import AIExpenseError
from aiexpense.gateway import build_gateway
from aiexpense.parser.engine import ParsingEngine
from aiexpense.server import configure_logging
from aiexpense.storage.db import initialize_schema
from aiexpense.storage.repositories import (
    AICostRepository,
    CategoryRepository,
    ExpenseRepository,
    PricingRepository,
)
from aiexpense.types import Source, UserMessage

SOURCE_CHOICES = [source.value for source in Source]


def _print_json(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str))
    sys.stdout.write("\n")


def cmd_init_db(args: argparse.Namespace) -> int:
    settings = load_settings(validate=False)
    initialize_schema(settings.database_path)
    added = PricingRepository(settings.database_path).seed_defaults()
    print(f"✓ Database ready at {settings.database_path} ({added} pricing rows added)")
    return 0


def cmd_chat(args: argparse.Namespace) -> int:
    settings = load_settings(validate=False)
    parser = ParsingEngine(backend=None) if args.no_llm else None
    gateway = build_gateway(settings, parser=parser)

    message = UserMessage(
        user_id=args.user_id,
        source=Source.TERMINAL,
        text=args.text,
        received_at=datetime.now(timezone.utc),
    )
    try:
        response = gateway.process(message)
    except AIExpenseError as e:
        _print_json({"status": "error", "message": str(e)})
        return 1

    if args.json:
        _print_json({"status": "success", "message": response.text, "data": response.structured_data})
    else:
        print(response.text)
    return 0


def cmd_expenses(args: argparse.Namespace) -> int:
    settings = load_settings(validate=False)
    expenses = ExpenseRepository(settings.database_path).list_by_user(args.user_id, args.source)
    _print_json({"user_id": args.user_id, "source": args.source, "expenses": [e.to_dict() for e in expenses]})
    return 0


def cmd_edit(args: argparse.Namespace) -> int:
    settings = load_settings(validate=False)
    fields: dict[str, Any] = {}
    if args.description is not None:
        fields["description"] = args.description
    if args.payment_method is not None:
        fields["payment_method"] = args.payment_method
    if args.date is not None:
        try:
            fields["expense_date"] = date.fromisoformat(args.date)
        except ValueError:
            _print_json({"status": "error", "message": f"invalid date: {args.date}"})
            return 1
    if args.category is not None:
        category = CategoryRepository(settings.database_path).find_by_name(args.user_id, args.source, args.category)
        if category is None:
            _print_json({"status": "error", "message": f"unknown category: {args.category}"})
            return 1
        fields["category_id"] = category.id

    if not fields:
        _print_json({"status": "error", "message": "nothing to update"})
        return 1

    expense = ExpenseRepository(settings.database_path).update(args.user_id, args.source, args.expense_id, **fields)
    if expense is None:
        _print_json({"status": "error", "message": f"expense not found: {args.expense_id}"})
        return 1
    _print_json({"status": "success", "expense": expense.to_dict()})
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    settings = load_settings(validate=False)
    if not ExpenseRepository(settings.database_path).delete(args.user_id, args.source, args.expense_id):
        _print_json({"status": "error", "message": f"expense not found: {args.expense_id}"})
        return 1
    _print_json({"status": "success", "deleted": args.expense_id})
    return 0


def cmd_costs(args: argparse.Namespace) -> int:
    settings = load_settings(validate=False)
    repository = AICostRepository(settings.database_path)
    logs = repository.list_by_user(args.user_id)
    _print_json({
        "user_id": args.user_id,
        "calls": len(logs),
        "total_cost": str(repository.total_cost(args.user_id)),
        "logs": [
            {
                "operation": log.operation,
                "provider": log.provider,
                "model": log.model,
                "input_tokens": log.input_tokens,
                "output_tokens": log.output_tokens,
                "cost": str(log.cost),
                "cost_note": log.cost_note,
                "created_at": log.created_at.isoformat(),
            }
            for log in logs
        ],
    })
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aiexpense", description="AI expense gateway local CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    init_db = sub.add_parser("init-db", help="Create the schema and seed default pricing")
    init_db.set_defaults(func=cmd_init_db)

    chat = sub.add_parser("chat", help="Send one message through the gateway as the terminal channel")
    chat.add_argument("--user-id", default="terminal_user")
    chat.add_argument("--text", required=True)
    chat.add_argument("--no-llm", action="store_true", help="Never call the AI backend (regex parser only)")
    chat.add_argument("--json", action="store_true", help="Print the full response as JSON")
    chat.set_defaults(func=cmd_chat)

    expenses = sub.add_parser("expenses", help="List a user's stored expenses")
    expenses.add_argument("--user-id", required=True)
    expenses.add_argument("--source", default=Source.TERMINAL.value, choices=SOURCE_CHOICES)
    expenses.set_defaults(func=cmd_expenses)

    edit = sub.add_parser("edit", help="Edit one stored expense")
    edit.add_argument("--user-id", required=True)
    edit.add_argument("--source", default=Source.TERMINAL.value, choices=SOURCE_CHOICES)
    edit.add_argument("--expense-id", required=True)
    edit.add_argument("--description")
    edit.add_argument("--category", help="Name of one of the user's categories")
    edit.add_argument("--payment-method")
    edit.add_argument("--date", help="YYYY-MM-DD")
    edit.set_defaults(func=cmd_edit)

    delete = sub.add_parser("delete", help="Delete one stored expense")
    delete.add_argument("--user-id", required=True)
    delete.add_argument("--source", default=Source.TERMINAL.value, choices=SOURCE_CHOICES)
    delete.add_argument("--expense-id", required=True)
    delete.set_defaults(func=cmd_delete)

    costs = sub.add_parser("costs", help="Show a user's AI cost log")
    costs.add_argument("--user-id", required=True)
    costs.set_defaults(func=cmd_costs)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(load_settings(validate=False).log_level)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
