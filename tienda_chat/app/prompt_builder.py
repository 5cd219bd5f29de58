#!/usr/bin/env python3
"""
Prompt builder module for the supermarket chatbot.

This module turns the customer's question, the recent conversation and the
retrieved document text into the single prompt sent to the LLM. Composition
is a pure function of its inputs so identical inputs always give
byte-identical prompts.
"""

from enum import Enum

from .config import Config

NO_DOCUMENTS_FOUND = "No specific documents were found for this question."
DOCUMENTS_UNAVAILABLE = "Document information is not available right now."

HISTORY_START = "--- Conversation history ---"
HISTORY_END = "--- End of history ---"


class PromptMode(str, Enum):
    STRICT = "strict"
    HYBRID = "hybrid"
    BARE = "bare"


ROLE_INTRO = """You are the customer-support assistant of {store_name}, a supermarket chain. You help customers with:
- Available products, prices and stock
- Where products are inside the store (aisles and sections)
- Branch information (opening hours, addresses)"""

STRICT_TEMPLATE = """{intro}

Document information:
{context}

{history}Current customer question: {question}

Instructions:
- Answer in a friendly, professional tone and in the customer's language
- Stay consistent with the previous conversation if there is one
- Use ONLY the document information above; if the answer is not there, say clearly that you do not have that information
- For prices, include the $ symbol and the exact value
- For locations, name the specific aisle or section
- For opening hours, give full days and hours
- If the customer refers to something mentioned earlier, use it as context
- If you cannot answer completely, suggest asking the store staff

Answer:"""

HYBRID_TEMPLATE = """{intro}

Document information:
{context}

{history}Current customer question: {question}

Instructions:
- Answer in a friendly, professional tone and in the customer's language
- Stay consistent with the previous conversation if there is one
- Prefer the document information above; if it does not cover the question, use your general knowledge of how supermarkets work
- For prices, include the $ symbol; without document prices give realistic ranges
- For locations, mention the usual supermarket sections
- If the customer refers to something mentioned earlier, use it as context
- If you cannot answer completely, suggest asking the store staff

Answer:"""

BARE_TEMPLATE = """You are an assistant of {store_name}. Answer in a friendly, professional tone and in the customer's language.

Question: {question}

Short, helpful answer:"""


class PromptComposer:
    """Builds prompts for the LLM with context and conversation history."""

    def __init__(self, store_name: str = None):
        self.store_name = store_name or Config.STORE_NAME

    def format_history(self, history: str) -> str:
        """Delimited history block, or "" when there is no history."""
        history = (history or "").strip()
        if not history:
            return ""
        return f"{HISTORY_START}\n{history}\n{HISTORY_END}\n\n"

    def compose(self, question: str, history: str, retrieved_text: str, mode: PromptMode) -> str:
        """
        Build a prompt for the LLM.

        Args:
            question: The customer's current question
            history: Rendered conversation ("Customer: ..." / "Assistant: ..." lines)
            retrieved_text: Document text, or one of the sentinels
            mode: strict, hybrid or bare

        Returns:
            Prompt text
        """
        mode = PromptMode(mode)
        question = question.strip()

        if mode is PromptMode.BARE:
            return BARE_TEMPLATE.format(store_name=self.store_name, question=question)

        template = STRICT_TEMPLATE if mode is PromptMode.STRICT else HYBRID_TEMPLATE
        context = (retrieved_text or "").strip() or NO_DOCUMENTS_FOUND
        return template.format(
            intro=ROLE_INTRO.format(store_name=self.store_name),
            context=context,
            history=self.format_history(history),
            question=question,
        )
