"""
Citation aligner mapping ``[N]`` markers in generated text back to retrieved sources.
"""

import re
from typing import List, Sequence

from ..models.core import Citation, CitationReference, MessagePart
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

CITATION_MARKER = re.compile(r'\[(\d+)\]')

# Punctuation closing the sentence of the previous marker, e.g. the "." in "blue[1]."
MARKER_TRAILING_PUNCTUATION = '.,;:!?'


class CitationAligner:
    """Resolve citation markers in a complete assistant message.

    A marker cites the text that precedes it: the span starts right after the previous marker
    (skipping punctuation directly attached to that marker, but keeping leading whitespace) and
    ends just before the marker itself. Offsets are character offsets into the final text, with
    an exclusive end, so ``text[start:end]`` is the cited span.
    """

    def align(self, text: str, references: Sequence[CitationReference]) -> List[Citation]:
        """
        Locate every citation marker in ``text`` and resolve it against ``references``.

        Args:
            text: Full concatenated assistant message
            references: Retrieved chunks in prompt order; marker ``[N]`` refers to the Nth one

        Returns:
            One Citation per marker, in text order
        """
        citations = []
        segment_start = 0

        for match in CITATION_MARKER.finditer(text):
            index = int(match.group(1))
            citations.append(
                Citation(message_part=MessagePart(start=segment_start, end=match.start()),
                         references=[self._resolve(index, references)]))

            segment_start = match.end()
            while segment_start < len(text) and text[segment_start] in MARKER_TRAILING_PUNCTUATION:
                segment_start += 1

        logger.debug(f'Aligned {len(citations)} citations')
        return citations

    def _resolve(self, index: int, references: Sequence[CitationReference]) -> CitationReference:
        """Map a 1-based marker index to its reference, or to an empty file name when out of range."""
        if 1 <= index <= len(references):
            reference = references[index - 1]
            return CitationReference(file_name=reference.file_name, text=reference.text)

        logger.warning(f'Citation marker [{index}] is out of range for {len(references)} references')
        return CitationReference(file_name='', text='')
