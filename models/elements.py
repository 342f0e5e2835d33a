"""GTD Consolidator — Document content elements.

Closed set of element kinds the consolidated document is built from.
Anything read back from a converted Doc is normalized into one of these
before it is prepended.
"""
from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Paragraph:
    text: str
    heading: Optional[str] = None  # Docs namedStyleType, e.g. "HEADING_6"


@dataclass(frozen=True)
class ListItem:
    text: str


@dataclass(frozen=True)
class PageBreak:
    pass


@dataclass(frozen=True)
class Image:
    uri: str


@dataclass(frozen=True)
class TableRow:
    cells: Tuple[str, ...] = ()

    @property
    def text(self) -> str:
        return "\t".join(self.cells)


Element = Union[Paragraph, ListItem, PageBreak, Image, TableRow]
