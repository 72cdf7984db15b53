# -*- coding: utf-8 -*-
"""
Prompt templates for expense extraction.
"""

SYSTEM_PROMPT = "You are an expense tracking assistant. You only answer with JSON."

EXPENSE_EXTRACTION_PROMPT = """Extract every expense from the user's message.
Today is {today}.

Return a JSON object of the form {{"expenses": [...]}} where each item has:
- description: string (what the money was spent on, without the amount or date words)
- amount: number (negative for refunds or credits; null if the message gives none)
- currency: string ISO 4217 code, or null if the message does not say
- suggested_category: one of {categories}
- payment_method: string ("Cash", "Credit Card", "Debit Card", "Line Pay", ...), or null
- date: string YYYY-MM-DD; resolve relative words like "yesterday" or "上週" against today;
  use today when no date is mentioned

Keep the items in the order they appear in the message.
If the message contains no expenses, return {{"expenses": []}}.

Message: {text}
"""
