"""Identity resolution of aggregated rows against stored records."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .errors import IdentityAmbiguityWarning

if TYPE_CHECKING:
    from .aggregate import AggregatedRow
    from .store import RecordStore, StockRecord

logger = logging.getLogger(__name__)


class MatchKind(str, Enum):
    BY_ARTICLE = "article"
    BY_NAME = "name"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one identity: the matched record, if any."""

    kind: MatchKind
    record: StockRecord | None = None
    warnings: tuple[IdentityAmbiguityWarning, ...] = field(default=())

    @property
    def found(self) -> bool:
        return self.record is not None


async def resolve_identity(store: RecordStore, row: AggregatedRow) -> Resolution:
    """Match ``row`` to at most one record in the store's scope.

    The article is tried first. A row whose article matches nothing falls back
    to a case-insensitive exact name match, but only onto a record that has no
    article of its own; a name hit carrying a different article is reported as
    ambiguous and left alone.
    """

    warnings: list[IdentityAmbiguityWarning] = []
    if row.article:
        record = await store.find_by_article(row.article)
        if record is not None:
            duplicates = await store.count_by_article(row.article)
            if duplicates > 1:
                warnings.append(
                    IdentityAmbiguityWarning(
                        f"{duplicates} records share article {row.article!r}; "
                        f"using record {record.id}"
                    )
                )
            return Resolution(MatchKind.BY_ARTICLE, record, tuple(warnings))

    if row.name:
        record = await store.find_by_name(row.name)
        if record is not None:
            if row.article and record.article and record.article != row.article:
                warnings.append(
                    IdentityAmbiguityWarning(
                        f"name {row.name!r} matches record {record.id} with article "
                        f"{record.article!r}, not {row.article!r}; treated as no match"
                    )
                )
                return Resolution(MatchKind.NOT_FOUND, None, tuple(warnings))
            return Resolution(MatchKind.BY_NAME, record, tuple(warnings))

    return Resolution(MatchKind.NOT_FOUND, None, tuple(warnings))


__all__ = ["MatchKind", "Resolution", "resolve_identity"]
