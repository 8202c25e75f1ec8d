"""Prompt assembly for grounded question answering."""
from dataclasses import dataclass
from string import Formatter
from typing import Sequence

from docrag.errors import InvalidArgument
from docrag.rag.chunker import Chunk

DEFAULT_TEMPLATE = """\
The context below is made of snippets extracted from a larger document. \
A snippet starts and ends with "..." because it was cut out of its surroundings.

### Context
{context}

### Instruction
Answer the question using only the context above. \
If the context does not contain the answer, say that you don't know.

### Question
{query}

### Answer
"""


@dataclass(frozen=True)
class PromptTemplate:
    """Template text plus the rules for joining context snippets."""

    text: str = DEFAULT_TEMPLATE
    separator: str = "\n\n"
    marker: str = "..."

    def __post_init__(self):
        fields = {name for _, name, _, _ in Formatter().parse(self.text) if name is not None}
        if fields != {"context", "query"}:
            raise InvalidArgument(
                f"Template must use exactly the fields {{context}} and {{query}}, found {sorted(fields)}"
            )


def format_context(chunks: Sequence[Chunk], template: PromptTemplate = PromptTemplate()) -> str:
    """Join chunk texts, each wrapped in the truncation marker, in the given order."""
    return template.separator.join(
        f"{template.marker}{chunk.text}{template.marker}" for chunk in chunks
    )


def assemble(
    context_chunks: Sequence[Chunk],
    query: str,
    template: PromptTemplate = PromptTemplate(),
) -> str:
    """Render the context chunks and the query into a prompt.

    Chunks are used in the order given. An empty chunk list yields an empty
    context block rather than an error.
    """
    return template.text.format(
        context=format_context(context_chunks, template),
        query=query,
    )
