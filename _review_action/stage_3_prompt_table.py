"""
Stage 3: Prompt Table - PR Prompt Review

PURPOSE:
    Define the named prompt templates that are sent to the completion
    provider together with the patch, and the output pipeline each one feeds:

      COMMENT -> the response is posted as a plain PR comment
      REVIEW  -> the response is parsed as a JSON array of inline review
                 comments and submitted as a "request changes" review

    The table is resolved once, at configuration-load time, and is immutable
    afterwards. Every PromptSpec carries its kind explicitly so the fan-out
    stage never has to look at prompt names.

CALLED BY:
    stage_1_load_action_config.py - builds the table (default or override).
    stage_5_fan_out_prompts.py - renders each spec against the patch.

DESIGN DECISIONS:
    - The insertion point is the literal marker "{patch}". Rendering uses
      str.replace rather than str.format because the review template contains
      a JSON example with braces.
    - Override tables (PROMPTS env var) replace the default table entirely.
      Their kinds follow the default-to-COMMENT rule unless the name is one of
      REVIEW_PROMPT_NAMES.
"""

import enum
import json
from dataclasses import dataclass
from typing import Dict, List, Mapping

from .review_errors import ConfigurationError


PATCH_MARKER = "{patch}"


class PromptKind(enum.Enum):
    COMMENT = "comment"
    REVIEW = "review"


@dataclass(frozen=True)
class PromptSpec:
    """A named prompt template and the output pipeline its result feeds."""

    name: str
    template: str
    kind: PromptKind = PromptKind.COMMENT

    def render(self, patch: bytes) -> str:
        """Substitute the patch into the template's single insertion point."""
        return self.template.replace(
            PATCH_MARKER, patch.decode("utf-8", errors="replace")
        )


# ---------------------------------------------------------------------------
# DEFAULT TABLE
# ---------------------------------------------------------------------------

_CODE_REVIEW_TEMPLATE = """Please perform a code review for this patch.

Respond ONLY with a JSON array of inline review comments, no prose around it.
Each element must have this shape:

{
  "path": "relative/path/of/the/file.py",
  "body": "what should change and why, with a suggestion if possible",
  "side": "RIGHT",
  "start_side": "RIGHT",
  "line": 12,
  "start_line": 10
}

"line" is the last line the comment applies to; "start_line" and
"start_side" are only needed for comments spanning several lines. Use
"RIGHT" for added or unchanged lines and "LEFT" for removed lines.
Respond with [] if there is nothing to comment on.

{patch}"""

DEFAULT_PROMPTS: Dict[str, str] = {
    "Unit tests": (
        "If there are any new functions in this patch, "
        "write a unit test for each of them\n\n{patch}"
    ),
    "Code review": _CODE_REVIEW_TEMPLATE,
    "Scalability review": (
        "Review the given patch for potential scalability issues:\n\n{patch}"
    ),
    "Security review": (
        "Review the given patch for potential security issues:\n\n{patch}"
    ),
}

# Names whose output goes through the inline review pipeline.
REVIEW_PROMPT_NAMES = frozenset({"Code review"})


def resolve_kind(name: str) -> PromptKind:
    if name in REVIEW_PROMPT_NAMES:
        return PromptKind.REVIEW
    return PromptKind.COMMENT


def build_prompt_table(templates: Mapping[str, str]) -> List[PromptSpec]:
    """
    Turn a name -> template mapping into validated PromptSpecs.

    Raises ConfigurationError when the table is empty, a name is blank, or a
    template does not contain exactly one insertion point.
    """
    if not templates:
        raise ConfigurationError("the prompt table is empty")

    specs = []
    for name, template in templates.items():
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(f"invalid prompt name: {name!r}")
        if not isinstance(template, str):
            raise ConfigurationError(f"template for {name!r} must be a string")
        markers = template.count(PATCH_MARKER)
        if markers != 1:
            raise ConfigurationError(
                f"template for {name!r} must contain exactly one {PATCH_MARKER} "
                f"marker, found {markers}"
            )
        specs.append(PromptSpec(name=name, template=template, kind=resolve_kind(name)))
    return specs


def load_prompt_table(override_json: str = "") -> List[PromptSpec]:
    """Return the default table, or the table encoded in override_json."""
    if not override_json.strip():
        return build_prompt_table(DEFAULT_PROMPTS)

    try:
        override = json.loads(override_json)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"PROMPTS is not valid JSON: {e}") from e

    if not isinstance(override, dict):
        raise ConfigurationError(
            "PROMPTS must be a JSON object mapping prompt names to templates"
        )
    return build_prompt_table(override)
