import json
import unittest

from pageask import prompts
from pageask.schemas import AskRequest


class BuildPromptTest(unittest.TestCase):
    def test_sections_follow_fixed_order(self) -> None:
        request = AskRequest(
            question="What is this page about?",
            title="Example",
            url="https://example.com",
            pageContent="Some body text.",
            isSimple=True,
        )
        prompt = prompts.build_prompt(request)

        positions = [
            prompt.index(prompts.CONCISE_DIRECTIVE),
            prompt.index(prompts.ROLE_DIRECTIVE),
            prompt.index("Some body text."),
            prompt.index("What is this page about?"),
            prompt.index(prompts.CONCISE_REMINDER),
        ]
        self.assertEqual(positions, sorted(positions))
        self.assertIn("Example", prompt)
        self.assertIn("https://example.com", prompt)

    def test_detailed_prompt_has_no_concision_text(self) -> None:
        prompt = prompts.build_prompt(AskRequest(question="Why?"))
        self.assertNotIn(prompts.CONCISE_DIRECTIVE, prompt)
        self.assertNotIn(prompts.CONCISE_REMINDER, prompt)
        self.assertNotIn("Page content:", prompt)
        self.assertTrue(prompt.startswith(prompts.ROLE_DIRECTIVE))

    def test_plain_content_is_truncated_to_cap(self) -> None:
        content = "1" * 1500 + "2" * 1500
        prompt = prompts.build_prompt(AskRequest(question="Q", pageContent=content))
        expected = content[:2000] + prompts.TRUNCATED_MARKER
        self.assertIn(expected, prompt)
        self.assertEqual(prompt.count("2"), 500)

    def test_short_plain_content_is_not_marked(self) -> None:
        prompt = prompts.build_prompt(AskRequest(question="Q", pageContent="short text"))
        self.assertIn("short text", prompt)
        self.assertNotIn(prompts.TRUNCATED_MARKER, prompt)

    def test_truncation_counts_characters_not_bytes(self) -> None:
        content = "網" * 2100
        truncated = prompts.truncate_text(content)
        self.assertEqual(truncated, "網" * 2000 + prompts.TRUNCATED_MARKER)

    def test_structured_content_is_capped(self) -> None:
        content = json.dumps(
            {
                "headings": [f"Heading {i}" for i in range(1, 9)],
                "paragraphs": [f"Paragraph {i}" for i in range(1, 6)],
            }
        )
        prompt = prompts.build_prompt(AskRequest(question="Q", pageContent=content))

        for i in range(1, 6):
            self.assertIn(f"- Heading {i}\n", prompt + "\n")
        for i in range(6, 9):
            self.assertNotIn(f"Heading {i}", prompt)
        for i in range(1, 4):
            self.assertIn(f"Paragraph {i}", prompt)
        for i in range(4, 6):
            self.assertNotIn(f"Paragraph {i}", prompt)
        self.assertEqual(prompt.count(prompts.MORE_HEADINGS_MARKER), 1)
        self.assertEqual(prompt.count(prompts.MORE_PARAGRAPHS_MARKER), 1)

    def test_structured_content_within_caps_has_no_markers(self) -> None:
        content = json.dumps({"headings": ["Only"], "paragraphs": ["Body"]})
        prompt = prompts.build_prompt(AskRequest(question="Q", pageContent=content))
        self.assertIn("- Only", prompt)
        self.assertIn("Body", prompt)
        self.assertNotIn(prompts.MORE_HEADINGS_MARKER, prompt)
        self.assertNotIn(prompts.MORE_PARAGRAPHS_MARKER, prompt)

    def test_json_that_is_not_an_object_is_plain_text(self) -> None:
        prompt = prompts.build_prompt(AskRequest(question="Q", pageContent="[1, 2, 3]"))
        self.assertIn("[1, 2, 3]", prompt)


class SystemPromptTest(unittest.TestCase):
    def test_style_directives_differ(self) -> None:
        simple = prompts.build_system_prompt(True)
        detailed = prompts.build_system_prompt(False)
        self.assertIn("100 words", simple)
        self.assertIn("detailed", detailed)
        self.assertIn(prompts.TASK_DIRECTIVE, simple)
        self.assertIn(prompts.TASK_DIRECTIVE, detailed)


if __name__ == "__main__":
    unittest.main()
