"""Utility for loading instruction templates from files and personalizing them."""

import os
from string import Template
from typing import Any, Mapping

# Prompts are bundled next to this module
PROMPT_DIR = os.path.join(os.path.dirname(__file__), "prompts")


class PromptTemplate(Template):
    """
    Template using ``{name}`` placeholders.

    Instruction templates are written by administrators in the same syntax the
    settings screen documents (``Hello {firstName}``). ``{{`` renders a literal
    brace; any other brace is left alone, so JSON examples inside a template
    survive substitution.
    """

    delimiter = "{"
    pattern = r"""
    \{(?:
      (?P<escaped>\{)                       |
      (?P<named>[_a-zA-Z][_a-zA-Z0-9]*)\}   |
      (?P<braced>(?!))                      |
      (?P<invalid>)
    )
    """


def load_prompt_text(prompt_name: str) -> str:
    """
    Reads a bundled prompt template without substituting anything.

    Raises:
        FileNotFoundError: If the prompt file does not exist.
    """
    file_path = os.path.join(PROMPT_DIR, f"{prompt_name}.prompt")
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError as ex:
        raise FileNotFoundError(f"Prompt file not found: {file_path}") from ex


def render_template(template_text: str, values: Mapping[str, Any]) -> str:
    """
    Substitutes ``{name}`` placeholders in a template.

    Placeholders without a value are left in place rather than raising, since
    stored templates may reference fields a given profile does not have.
    """
    try:
        return PromptTemplate(template_text).safe_substitute(
            {k: "" if v is None else str(v) for k, v in values.items()}
        )
    except ValueError as ex:
        raise ValueError(f"Error formatting instruction template: {ex}") from ex
