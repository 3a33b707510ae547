"""Prompt templates for node execution, critique and document analysis."""

from __future__ import annotations

CHAIN_SYSTEM_PROMPT = (
    "You are part of a node-based reasoning chain. Use the provided context from "
    "previous steps to answer the current prompt."
)

CODE_SYSTEM_PROMPT = (
    "You are an expert Python developer and Data Scientist. Your task is to write "
    "Python code to solve the user's problem, and then SIMULATE the execution of that "
    "code to provide the final answer. If the user asks for web search, generate code "
    "that would hypothetically extract keywords or process results, then use the "
    "provided search results as the execution engine for that code. Always provide "
    "the Python code block first, then the execution result."
)

ATTACHED_FILE_NOTE = (
    '\n\nYou have access to a file named "{name}". Use its content (JSON configurations, '
    "data lists, or text) to guide your actions."
)

KNOWLEDGE_BASE_NOTE = " You have access to knowledge base excerpts. Use them when relevant."

SEARCH_NOTE = " You have access to external search results. Cite them if used."

ATTACHED_FILE_TEMPLATE = (
    "\n\n--- ATTACHED FILE CONTENT ({name}) ---\n{content}\n-------------------------------\n"
)
KNOWLEDGE_BASE_TEMPLATE = "\n\n--- Knowledge Base Context ---\n{context}"
SEARCH_TEMPLATE = "\n\n--- External Search Data ---\n{context}"
CURRENT_TASK_TEMPLATE = "\n\n--- Current Task ---\n{prompt}"

LOOP_PROGRESS_TEMPLATE = (
    "(Loop Attempt {attempt}/{max_retries}): Critique Failed.\n\n"
    "Reason: {reason}\n\nRefining Prompt and Retrying..."
)

CRITIQUE_SYSTEM_PROMPT = "You are an AI Optimization Agent. Return STRICT JSON only."

CRITIQUE_PROMPT_TEMPLATE = """Goal: Evaluate the "Output" against the "Criteria" provided.

1. "Output": {output}
2. "Criteria": {criteria}
3. "Original Prompt": {prompt}

Task:
If the output meets the criteria, set "pass" to true.
If it fails, set "pass" to false, explain why, and generate a BETTER version of the
"Original Prompt" that would fix the issue.

Return JSON ONLY: {{"pass": boolean, "reason": string, "refinedPrompt": string}}"""

DOCUMENT_ANALYSIS_SYSTEM_PROMPT = "You turn documents into exploration plans. Return STRICT JSON only."

DOCUMENT_ANALYSIS_PROMPT_TEMPLATE = """Analyze this document. Provide a summary of the main topic.
Then, identify {count} key sub-topics, questions, or analysis tasks derived from this
document that would allow for deeper exploration.

Return JSON ONLY: {{"summary": string, "childNodes": [{{"title": string, "prompt": string}}]}}

Document:
{document}"""
