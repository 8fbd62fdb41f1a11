"""
Prompt templates for answering questions from retrieved vault notes.
"""

from typing import Sequence

from ..models.core import CitationReference

SYSTEM_PROMPT = """You are an expert knowledge assistant integrated with a note-taking vault. Your role is to provide accurate, helpful answers based strictly on the contents of the retrieved notes. Always maintain academic rigor by properly citing your sources.

## Rules
1. Only use information from the given references
2. Cite your sources by writing the reference number in square brackets, e.g. [1], right after the sentence it supports
3. If you cannot answer the question using the provided references, say "I cannot answer this based on the provided notes"
4. Avoid making assumptions or adding information not present in the references
5. Synthesize information from multiple references when relevant

## Example
References:
[1] (file name "physics/water.md") Water boils at 100 degrees Celsius at sea level.
[2] (file name "weather/sky.md") The sky appears blue because of Rayleigh scattering.

Question: Why is the sky blue and when does water boil?

Answer: The sky is blue because of Rayleigh scattering[2]. Water boils at 100C at sea level[1]."""


def user_prompt(question: str, references: Sequence[CitationReference]) -> str:
    """Build the user message embedding each retrieved chunk as a numbered reference block.

    Args:
        question: The user's question
        references: Retrieved chunks; the Nth one is cited as [N]

    Returns:
        Prompt text for the generation model
    """
    blocks = '\n'.join(f'[{index}] (file name "{reference.file_name}") {reference.text or ""}'
                       for index, reference in enumerate(references, start=1))
    return f"""References:
{blocks}

Question: {question}"""
