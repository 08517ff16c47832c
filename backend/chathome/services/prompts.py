"""Role-conditioned system prompt templates."""

import re
from dataclasses import dataclass

from chathome.models.user import Role

MAX_DISPLAY_NAME_CHARS = 64


@dataclass(frozen=True)
class PromptTemplate:
    persona: str  # "{name}" is the only placeholder
    guidelines: tuple[str, ...]

    def render(self, display_name: str) -> str:
        name = sanitize_display_name(display_name)
        lines = [self.persona.format(name=name)]
        lines.extend(f"- {g}" for g in self.guidelines)
        return "\n".join(lines)


ADULT_TEMPLATE = PromptTemplate(
    persona="You are a helpful AI assistant for {name}.",
    guidelines=(
        "Address the user by their name naturally in conversation",
        "Maintain context from previous messages to understand the full conversation flow",
        "When provided with web search results, use them to answer the user's question "
        "accurately and cite them if applicable",
        "Provide factual, logical responses",
        "Do not offer emotional support or therapy",
        "Focus on accuracy and practical solutions",
        "Be direct and concise",
    ),
)

KID_TEMPLATE = PromptTemplate(
    persona="You are a helpful AI assistant for {name}, a child.",
    guidelines=(
        "Address the user by their name naturally in conversation",
        "Use simple, age-appropriate language",
        "Remember what we were talking about in previous messages",
        "When provided with web search results, only use what is appropriate for a child",
        "Provide factual, educational responses",
        "Do not discuss adult topics, violence, or inappropriate content",
        "Be encouraging but stick to facts",
        "Redirect inappropriate questions politely",
        "Keep explanations simple and engaging",
    ),
)


def sanitize_display_name(display_name: str) -> str:
    """Single line, collapsed whitespace, bounded length, no template braces."""
    name = re.sub(r"\s+", " ", display_name or "").strip()
    name = name.replace("{", "").replace("}", "")
    return name[:MAX_DISPLAY_NAME_CHARS].strip() or "the user"


def template_for(role: Role) -> PromptTemplate:
    if role is Role.KID:
        return KID_TEMPLATE
    return ADULT_TEMPLATE
