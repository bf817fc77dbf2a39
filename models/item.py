"""Raw feed item model produced by the source adapters.

Each RawItem is one news entry, paper, discussion post, or repository
pulled from an upstream feed and mapped into a common shape. Items are
frozen once produced; the scoring stage derives new ScoredItem objects
instead of mutating them.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RawItem(BaseModel):
    """A normalized item fetched from one upstream source.

    Attributes:
        title: Headline, paper title, or repository label (required)
        summary: Abstract or feed description, if the source provides one
        url: Link to the item
        source: Display name of the originating source (e.g. 'arXiv')
        published: Publication timestamp
        authors: Author names (papers only)
        popularity: Upvotes or stars, where the source exposes them
        language: Primary programming language (repositories only)

    Example:
        >>> item = RawItem(
        ...     title="Scaling laws for sparse models",
        ...     url="http://arxiv.org/abs/2501.00001",
        ...     source="arXiv",
        ...     published=datetime.now(timezone.utc),
        ... )
        >>> item.summary_text
        'Scaling laws for sparse models'
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(description="Item headline")
    summary: str | None = Field(default=None, description="Abstract or description text")
    url: str = Field(description="Link to the item")
    source: str = Field(description="Originating source name")
    published: datetime = Field(description="Publication timestamp")
    authors: list[str] = Field(default_factory=list, description="Author names")
    popularity: int | None = Field(default=None, description="Points or stars")
    language: str | None = Field(default=None, description="Repository language")

    @property
    def summary_text(self) -> str:
        """Summary for prompts, falling back to the title when absent."""
        return self.summary or self.title

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        return f"RawItem({self.source}, '{self.title[:50]}')"
