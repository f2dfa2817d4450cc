"""
Prompt building for session titles.

A title is requested once, after the first answer of a session has been
generated.
"""

import re

TITLE_PROMPT = (
    "As an AI Assistant, give me the title of the following chat response in 3 to 6 words:\n"
    "User Message: {user_message}\n"
    " AI response: {response}\n"
    "Note:Do not add Title word in it"
)

_SURROUNDING_QUOTES = re.compile(r'^"|"$')


def build_title_prompt(user_message: str, response: str) -> str:
    return TITLE_PROMPT.format(user_message=user_message, response=response)


def strip_title_quotes(raw: str) -> str:
    """Removes one leading and one trailing double quote, then whitespace."""
    return _SURROUNDING_QUOTES.sub("", raw.strip()).strip()
