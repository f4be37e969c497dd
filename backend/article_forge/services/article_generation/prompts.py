"""
文章编排使用的固定提示词

所有提示词都是英文，模型输出的正文语言跟随大纲。
"""

from ...core.constants import ArticleConstants

_START = ArticleConstants.SECTION_START
_END = ArticleConstants.SECTION_END
_SENTINEL = ArticleConstants.COMPLETION_SENTINEL


WRITING_STYLE = (
    "WRITING STYLE: Blend the finesse of a seasoned copywriter with deep expertise in the topic. "
    "Speak like a trusted colleague: warm, approachable and human. Lead with benefits, use active voice, "
    "and avoid hedging language. Write natural, paragraph-based prose that prioritizes clarity and flow. "
    "Keep paragraphs short, use lists only when they truly clarify, and avoid em-dashes."
)


PLANNING_PROMPT = (
    "I'm about to give you the research and outline for an article you will write for me. "
    "Do not start writing yet. First take everything in, analyze it, and prepare a plan: "
    "flesh out the outline, decide what goes where, and determine a target word count. "
    "Finish by listing the planned sections as a numbered list, one section per line.\n\n"
    f"{WRITING_STYLE}\n\n"
    "ARTICLE OUTLINE AND RESEARCH:\n"
)


TITLE_INTRO_PROMPT = (
    "Now write the title and the introduction of the article, following your plan.\n\n"
    "FORMAT RULES (apply to this and every following section):\n"
    f"- Wrap the section content between {_START} and {_END}, each on its own line.\n"
    "- Output exactly one section per reply and nothing outside the markers.\n"
    f"- When every planned section, including the conclusion, has been written, reply with {_SENTINEL} "
    "and nothing else."
)


CONTINUE_PROMPT = (
    "Proceed to the next section of the article. Keep the format primarily narrative: flowing prose with "
    "short paragraphs that guide the reader from one idea to the next. Follow the original outline and "
    "your planned word allocation for this section.\n\n"
    f"Wrap the section between {_START} and {_END}. If the conclusion has already been written and the "
    f"article is finished, reply with {_SENTINEL} only."
)


EVALUATION_SYSTEM_PROMPT = (
    "You are a strict editor. You will receive an article plan and a draft written against it. "
    "Decide whether the draft is structurally complete: every planned part is covered and the draft "
    "ends with a conclusion. Answer with a single word: YES or NO."
)


def build_planning_prompt(outline: str) -> str:
    return f"{PLANNING_PROMPT}{outline}"


def build_evaluation_prompt(plan: str, draft: str) -> str:
    return (
        "ARTICLE PLAN:\n"
        f"{plan}\n\n"
        "DRAFT SO FAR:\n"
        f"{draft}\n\n"
        "Is this draft structurally complete with a conclusion? Answer YES or NO."
    )
