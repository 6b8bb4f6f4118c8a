"""Prompts para a LLM."""

from .receipt_prompts import ReceiptPrompts

__all__ = ["ReceiptPrompts"]
