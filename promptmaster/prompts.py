"""Instruction templates sent to each feature's model."""

import json
from textwrap import dedent
from typing import Dict, List, Sequence

from .config import Language

# Schema for the interview's structured output
INTERVIEW_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "question": {"type": "STRING"},
        "options": {"type": "ARRAY", "items": {"type": "STRING"}},
        "isFinalDraft": {"type": "BOOLEAN"},
        "generatedPrompt": {"type": "STRING"},
    },
    "required": ["question", "options", "isFinalDraft"],
}

MESSAGES: Dict[str, Dict[Language, str]] = {
    "start_interview": {
        Language.ENGLISH: "Start the interview. Ask me the first question about what I want to create.",
        Language.CHINESE: "开始面试。问我第一个关于我想创建的内容的问题。",
    },
    "reroll_options": {
        Language.ENGLISH: "I don't like these options. Please provide 3 different ones.",
        Language.CHINESE: "我不喜欢这些选项，请提供另外三个不同的选项。",
    },
    "parse_error": {
        Language.ENGLISH: "System Error: Could not parse AI response. Please try again.",
        Language.CHINESE: "系统错误：无法解析 AI 的回复，请重试。",
    },
    "finalize": {
        Language.ENGLISH: (
            "We have discussed enough. Please generate the final detailed prompt. "
            "Combine Persona, Task, Context, and Format into a single, comprehensive instruction block."
        ),
        Language.CHINESE: (
            "我们已经讨论够了。请生成最终的详细提示词。"
            "请务必将角色、任务、背景和格式这四个要素整合成一段完整、详细、可直接使用的指令。"
            "**重要：生成的提示词内容本身必须使用简体中文书写**（除非用户在对话中明确指定了生成其他语言的提示词）。"
        ),
    },
    "analyzing": {
        Language.ENGLISH: "Analyzing prompt structure...",
        Language.CHINESE: "正在分析提示词结构...",
    },
    "no_more_feedback": {
        Language.ENGLISH: "No further suggestions",
        Language.CHINESE: "暂无更多建议",
    },
    "full_rewrite_task": {
        Language.ENGLISH: 'Rewrite and optimize the entire prompt to be a "Power Prompt".',
        Language.CHINESE: "任务：重写并优化整个提示词。",
    },
}

CONTEXT_FALLBACK = "User provided prompt directly. Focus on clarity and structure."

# Templates are dedented before user text is substituted, so multi-line
# prompts never affect the indentation that gets stripped.

INTERVIEW_SYSTEM_TEMPLATE = dedent("""\
    You are an expert Prompt Engineering Consultant (The Architect).

    CORE OBJECTIVE:
    Build a "Power Prompt" for the user by systematically gathering 4 Pillars:
    1. **Persona**
    2. **Task**
    3. **Context**
    4. **Format**

    BEHAVIOR GUIDELINES:
    1. **Think Before Speaking**: internally review conversation history.
    2. **One Thing at a Time**: Ask only ONE question at a time.
    3. **Stable Personality**: Be professional and concise.
    4. **Strict Pronouns**: You are "I" (The Consultant). The Prompt is for "The AI". The User is "You".

    LANGUAGE RULES:
    1. You MUST conduct the interview in {lang_name}.
    2. CRITICAL: The final "generatedPrompt" MUST be written in {lang_name}, unless the user specifically requests a different language for the target AI.

    RESPONSE FORMAT:
    You must respond in valid JSON with the following structure:
    {{
      "question": "The question to ask the user",
      "options": ["Option A", "Option B", "Option C"], // Provide exactly 3 distinct choices
      "isFinalDraft": boolean, // Set to true only when you have collected all 4 pillars and are ready to generate the final prompt
      "generatedPrompt": "string" // The full prompt, only required if isFinalDraft is true
    }}
    IMPORTANT: Keys must be exactly as shown (lowercase). Do not include markdown formatting.""")

REVERSE_ENGINEER_TEMPLATE = dedent("""\
    Analyze the following prompt and reverse-engineer the "Context Pillars" to serve as a specification for an Editor AI.

    Original Prompt: "{prompt}"

    Task: Extract/Infer the following pillars:
    1. Intended Persona (Who is the AI?)
    2. Core Task (What must it do?)
    3. Background/Constraints (Context)
    4. Output Format

    Output a concise, structured summary in {lang_name}.
    Start immediately with "User Context Analysis:". Do not add preamble.""")

MENTOR_TEMPLATE = dedent("""\
    You are a strict Prompt Mentor.
    Context: {context}
    Current Prompt: "{prompt}"

    Task: Identify the WEAKEST pillar (Persona, Task, Context, Format) or specific phrasing issue.
    Provide ONE short, specific tip to improve it.
    Keep it under 15 words.
    {ignore_instruction}
    RESPONSE LANGUAGE: {lang_name}.""")

APPLY_FEEDBACK_TEMPLATE = dedent("""\
    You are a Surgical Text Editor.

    Current Prompt: "{prompt}"
    User Context: {context}

    Target Improvement: "{feedback}"

    Task: Modify the "Current Prompt" to incorporate the "Target Improvement".

    Guidelines:
    1. Make the MINIMUM necessary changes to satisfy the improvement.
    2. Preserve the original structure and tone as much as possible.
    3. {locked_instruction}

    Output:
    Return ONLY the modified prompt text. No explanations.
    OUTPUT LANGUAGE: {lang_name}.""")

CRITIQUE_TEMPLATE = dedent("""\
    You are a meticulous Copy Editor for AI Prompts.
    Analyze the "Current Prompt" and find specific sentences or phrases that are vague, weak, or confusing.

    Context: {context}
    Current Prompt: "{prompt}"

    Return a JSON array of suggestions.
    Format:
    [
        {{
            "originalText": "exact substring from the prompt",
            "suggestedText": "improved version",
            "reason": "short reason",
            "type": "clarity"
        }}
    ]

    Rules:
    1. "originalText" MUST match a substring in the prompt EXACTLY.
    2. Limit to 3-5 most important suggestions.
    3. "suggestedText" must only replace the "originalText".
    4. "type" is one of: clarity, tone, structure, grammar.
    5. Language: {lang_name}.""")

CLASSIFY_TEMPLATE = dedent("""\
    Classify this prompt segment into: Persona, Task, Context, Format, or Other.
    Full Prompt: "{full_prompt}"
    Target Segment: "{segment}"
    Return ONLY the word.""")

FULL_REWRITE_TEMPLATE = dedent("""\
    You are an expert Prompt Engineer.
    Context provided by user: {context}
    Current Prompt Draft: "{prompt}"

    {task}

    CRITICAL INSTRUCTION:
    You must STRICTLY adhere to the "Context provided by user".
    The User Context contains the specific requirements (Persona, Task, etc.).
    Do not hallucinate new requirements. Only improve the phrasing and structure of the provided draft based on the Context.

    {locked_instruction}

    Requirement: Output ONLY the improved prompt text. Do not include explanations.
    OUTPUT LANGUAGE: {lang_name}. THIS IS CRITICAL.""")

PARTIAL_REWRITE_TEMPLATE = dedent("""\
    You are a precise text editor.
    User Context: {context}
    Full Text: "{prompt}"

    Segment to Rewrite: "{segment}"

    Task: Rewrite ONLY the "Segment to Rewrite" to be clearer, more professional, or more impactful within the context.

    IMPORTANT:
    1. Return ONLY the rewritten segment string.
    2. Do NOT include any other parts of the Full Text.
    3. Do NOT include conversational filler like "Here is the rewritten text".
    4. Language: {lang_name}.
    {locked_instruction}""")


def message(key: str, language: Language) -> str:
    """Localized fixed text."""
    return MESSAGES[key][Language(language)]


def locked_instruction(locked_segments: Sequence[str]) -> str:
    """Instruction listing text that must survive an edit verbatim."""
    if not locked_segments:
        return ""
    quoted = ", ".join(f'"{segment}"' for segment in locked_segments)
    return f"CRITICAL: The following parts MUST remain exactly as they are: {quoted}"


def interview_system_instruction(language: Language) -> str:
    return INTERVIEW_SYSTEM_TEMPLATE.format(lang_name=Language(language).display_name)


def reverse_engineer_prompt(prompt: str, language: Language) -> str:
    return REVERSE_ENGINEER_TEMPLATE.format(prompt=prompt, lang_name=Language(language).display_name)


def mentor_prompt(prompt: str, context: str, language: Language, ignored_feedback: List[str]) -> str:
    ignore = ""
    if ignored_feedback:
        ignore = (
            "CRITICAL: Do NOT repeat any of these previous suggestions: "
            f"{json.dumps(ignored_feedback, ensure_ascii=False)}."
        )
    return MENTOR_TEMPLATE.format(
        prompt=prompt,
        context=context,
        ignore_instruction=ignore,
        lang_name=Language(language).display_name,
    )


def apply_feedback_prompt(
    prompt: str, context: str, feedback: str, locked_segments: Sequence[str], language: Language
) -> str:
    return APPLY_FEEDBACK_TEMPLATE.format(
        prompt=prompt,
        context=context,
        feedback=feedback,
        locked_instruction=locked_instruction(locked_segments),
        lang_name=Language(language).display_name,
    )


def critique_prompt(prompt: str, context: str, language: Language) -> str:
    return CRITIQUE_TEMPLATE.format(prompt=prompt, context=context, lang_name=Language(language).display_name)


def classify_prompt(segment: str, full_prompt: str) -> str:
    return CLASSIFY_TEMPLATE.format(segment=segment, full_prompt=full_prompt)


def full_rewrite_prompt(prompt: str, context: str, locked_segments: Sequence[str], language: Language) -> str:
    language = Language(language)
    lang_name = "Simplified Chinese (简体中文)" if language is Language.CHINESE else "English"
    return FULL_REWRITE_TEMPLATE.format(
        prompt=prompt,
        context=context,
        task=message("full_rewrite_task", language),
        locked_instruction=locked_instruction(locked_segments),
        lang_name=lang_name,
    )


def partial_rewrite_prompt(
    prompt: str, context: str, segment: str, language: Language, locked_segments: Sequence[str] = ()
) -> str:
    return PARTIAL_REWRITE_TEMPLATE.format(
        prompt=prompt,
        context=context,
        segment=segment,
        locked_instruction=locked_instruction(locked_segments),
        lang_name=Language(language).display_name,
    )
