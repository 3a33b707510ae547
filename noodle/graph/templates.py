"""Ready-made node templates grouped by category."""

from __future__ import annotations

from dataclasses import dataclass

from noodle.config import Settings
from noodle.errors import ValidationError
from noodle.graph.models import GraphNode, LoopConfig, NodeType
from noodle.graph.store import GraphStore

DEFAULT_CRITIQUE = "Ensure tone is professional and no factual errors."


@dataclass(frozen=True)
class NodeTemplate:
    label: str
    title: str
    prompt: str
    node_type: NodeType = NodeType.TEXT
    loop: bool = False
    # Settings attribute holding the default URL for webhook connectors.
    url_setting: str | None = None


TEMPLATE_CATEGORIES: dict[str, tuple[NodeTemplate, ...]] = {
    "Text Analysis": (
        NodeTemplate(
            "Summarizer",
            "Summarize",
            "Summarize the input provided in the context. Focus on key points and actionable insights.",
        ),
        NodeTemplate(
            "Fact Checker",
            "Fact Check",
            "Verify the claims made in the input. Point out inaccuracies and provide corrections where possible.",
        ),
        NodeTemplate(
            "Simplify",
            "Explain Like I'm 5",
            "Explain the provided concept or text in simple terms suitable for a beginner or child.",
        ),
    ),
    "Code & Search": (
        NodeTemplate(
            "Python Search Assistant",
            "Py Search",
            "Write a Python script to extract keywords from the attached file (if any) or the context, "
            "and use them to perform a comprehensive web search.",
            NodeType.CODE,
        ),
        NodeTemplate(
            "Code Reviewer",
            "Code Review",
            "Review the code provided in the context. Identify potential bugs, security issues, "
            "and suggest optimizations.",
            NodeType.CODE,
        ),
    ),
    "Agent & Automation": (
        NodeTemplate("Self-Correcting Writer", "Writer Agent", "Draft a blog post about AI.", loop=True),
        NodeTemplate(
            "Flowise Connector",
            "Flowise",
            "Send context to Flowise workflow.",
            NodeType.WEBHOOK,
            url_setting="flowise_url",
        ),
        NodeTemplate(
            "ActivePieces Connector",
            "ActivePieces",
            "Trigger ActivePieces automation.",
            NodeType.WEBHOOK,
            url_setting="activepieces_url",
        ),
    ),
    "Creative & Utility": (
        NodeTemplate(
            "Idea Generator",
            "Brainstorm",
            "Based on the context, generate 5 creative ideas or potential next steps.",
        ),
        NodeTemplate(
            "Translator (ES)",
            "To Spanish",
            "Translate the provided context or input into Spanish. Maintain the tone and style.",
        ),
    ),
}


def find_template(label: str) -> NodeTemplate:
    for templates in TEMPLATE_CATEGORIES.values():
        for template in templates:
            if template.label == label:
                return template
    raise ValidationError(f"Unknown template: {label}")


def add_template_node(
    store: GraphStore,
    label: str,
    config: Settings,
    *,
    x: float = 0.0,
    y: float = 0.0,
) -> GraphNode:
    """Create a node from the template called `label`."""

    template = find_template(label)
    loop_config = LoopConfig(enabled=True, max_retries=3, critique_prompt=DEFAULT_CRITIQUE) if template.loop else None
    webhook_url = getattr(config, template.url_setting) if template.url_setting else None

    return store.add_node(
        prompt=template.prompt,
        title=template.title,
        node_type=template.node_type,
        x=x,
        y=y,
        webhook_url=webhook_url or None,
        loop_config=loop_config,
    )
