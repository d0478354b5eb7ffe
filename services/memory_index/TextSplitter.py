"""Recursive text splitter for memory-card chunking.

Long card texts are split along the coarsest boundary that yields pieces
no longer than the chunk size (paragraph, line, sentence, word, character)
and the pieces are then packed greedily into chunks. Consecutive chunks
share the trailing characters of the previous chunk so that context across
a chunk boundary survives into both embeddings.
"""

from shared.helper.HelperConfig import HelperConfig

CHUNK_SIZE = 1600       # characters per chunk (~400 tokens)
CHUNK_OVERLAP = 200     # characters carried over from the previous chunk
SEPARATORS = ["\n\n", "\n", ". ", "! ", "? ", " ", ""]


class TextSplitter:
    """Deterministic chunker. Same input and settings always yield the same chunks."""

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        separators: list[str] | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive.")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be between 0 and chunk_size - 1.")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators) if separators is not None else list(SEPARATORS)

    @classmethod
    def from_config(cls, helper_config: HelperConfig) -> "TextSplitter":
        """Build a splitter from CHUNK_SIZE and CHUNK_OVERLAP."""
        return cls(
            chunk_size=int(helper_config.get_number_val("CHUNK_SIZE", default=CHUNK_SIZE)),
            chunk_overlap=int(helper_config.get_number_val("CHUNK_OVERLAP", default=CHUNK_OVERLAP)),
        )

    def split(self, text: str) -> list[str]:
        """Split a text into chunks.

        Every chunk is a contiguous, whitespace-trimmed slice of the input
        and at most chunk_size characters long. The only exception is a
        piece that no separator can split further, which is emitted as is.

        Args:
            text (str): The text to split.

        Returns:
            list[str]: The chunks in document order. Empty for blank input;
                exactly [text] if the text already fits into one chunk.
        """
        if not text.strip():
            return []
        if len(text) <= self.chunk_size:
            return [text]

        chunks: list[str] = []
        current = ""
        for piece in self._recursive_split(text, self.separators):
            if len(current) + len(piece) <= self.chunk_size:
                current += piece
                continue

            if current.strip():
                chunks.append(current.strip())
                current = self._overlap_tail(current, piece) + piece
            else:
                # oversized atomic piece
                current = piece

        if current.strip():
            chunks.append(current.strip())
        return [chunk for chunk in chunks if chunk]

    def _overlap_tail(self, closed: str, next_piece: str) -> str:
        # the seed shrinks so that seed + next piece still fits into one chunk
        size = min(self.chunk_overlap, self.chunk_size - len(next_piece))
        if size <= 0 or len(closed) <= size:
            return ""
        return closed[-size:]

    def _recursive_split(self, text: str, separators: list[str]) -> list[str]:
        """Split on the first separator, recursing into pieces that are still too long.

        Separators stay attached to the end of the piece they follow, so the
        pieces always concatenate back to the input.
        """
        if not text:
            return []
        if not separators:
            return [text]

        separator, finer = separators[0], separators[1:]
        if separator == "":
            pieces = list(text)
        else:
            parts = text.split(separator)
            pieces = [part + separator for part in parts[:-1]] + [parts[-1]]
            pieces = [piece for piece in pieces if piece]

        if not finer:
            return pieces

        result: list[str] = []
        for piece in pieces:
            if len(piece) > self.chunk_size:
                result.extend(self._recursive_split(piece, finer))
            else:
                result.append(piece)
        return result
