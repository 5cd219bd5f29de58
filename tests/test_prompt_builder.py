#!/usr/bin/env python3
"""
Test suite for PromptComposer.

USAGE:
    Run from project root: python -m pytest tests/test_prompt_builder.py -v
"""

import unittest

from tienda_chat.app.prompt_builder import (
    DOCUMENTS_UNAVAILABLE,
    HISTORY_END,
    HISTORY_START,
    NO_DOCUMENTS_FOUND,
    PromptComposer,
    PromptMode,
)


class TestPromptComposer(unittest.TestCase):

    def setUp(self):
        self.composer = PromptComposer(store_name="Tienda Test")
        self.history = "Customer: ¿Tienen leche?\nAssistant: Sí, en el pasillo 3."
        self.context = "Leche entera 1L - $1200 - Pasillo 3"

    def test_compose_is_deterministic(self):
        for mode in PromptMode:
            first = self.composer.compose("¿Y manteca?", self.history, self.context, mode)
            second = self.composer.compose("¿Y manteca?", self.history, self.context, mode)
            self.assertEqual(first, second)

    def test_hybrid_prompt_contains_all_parts(self):
        prompt = self.composer.compose("¿Y manteca?", self.history, self.context, PromptMode.HYBRID)

        self.assertIn("Tienda Test", prompt)
        self.assertIn(self.context, prompt)
        self.assertIn(HISTORY_START, prompt)
        self.assertIn(self.history, prompt)
        self.assertIn(HISTORY_END, prompt)
        self.assertIn("Current customer question: ¿Y manteca?", prompt)
        self.assertIn("general knowledge", prompt)
        self.assertTrue(prompt.endswith("Answer:"))

    def test_strict_prompt_restricts_to_documents(self):
        strict = self.composer.compose("¿Precio?", "", self.context, PromptMode.STRICT)
        hybrid = self.composer.compose("¿Precio?", "", self.context, PromptMode.HYBRID)

        self.assertIn("Use ONLY the document information", strict)
        self.assertNotIn("general knowledge", strict)
        self.assertNotEqual(strict, hybrid)

    def test_without_history_there_is_no_history_block(self):
        prompt = self.composer.compose("Hola", "   ", self.context, PromptMode.HYBRID)
        self.assertNotIn(HISTORY_START, prompt)

    def test_empty_context_uses_no_documents_sentinel(self):
        prompt = self.composer.compose("Hola", "", "", PromptMode.HYBRID)
        self.assertIn(NO_DOCUMENTS_FOUND, prompt)

    def test_unavailable_sentinel_is_passed_through(self):
        prompt = self.composer.compose("Hola", "", DOCUMENTS_UNAVAILABLE, PromptMode.HYBRID)
        self.assertIn(DOCUMENTS_UNAVAILABLE, prompt)

    def test_bare_prompt_has_only_store_and_question(self):
        prompt = self.composer.compose("¿Abren los domingos?", self.history, self.context, PromptMode.BARE)

        self.assertIn("Tienda Test", prompt)
        self.assertIn("¿Abren los domingos?", prompt)
        self.assertNotIn(self.context, prompt)
        self.assertNotIn("Customer:", prompt)
        self.assertNotIn(HISTORY_START, prompt)

    def test_mode_accepts_plain_string(self):
        self.assertEqual(
            self.composer.compose("Hola", "", self.context, "hybrid"),
            self.composer.compose("Hola", "", self.context, PromptMode.HYBRID),
        )


if __name__ == '__main__':
    unittest.main()
